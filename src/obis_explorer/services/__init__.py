"""
Shared service utilities.

- http.py    - requests session with retry/backoff, HTTP status -> error mapping
- logging_configurator.py - console logging setup for the CLI and scripts
"""
