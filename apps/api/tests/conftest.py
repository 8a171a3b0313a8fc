"""
Pytest configuration

The weather association analysis is pure, so no database or network
fixtures are needed. Day builders live in fixtures/weather_fixtures.py.
"""
import sys
import os

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
