"""
Constants for the storage layer.

Values are read from the environment; a local .env file is loaded first
so development setups do not need exported variables.
"""

from dotenv import load_dotenv

load_dotenv(".env")
