"""
Application Layer for the workout sync engine.

This package contains:
- ports/: Abstract store and client interfaces (what the engine needs)
- use_cases/: Entry points used by the presentation layer
- exceptions.py: Error taxonomy shared by every layer
"""
