"""Configuration module - re-exports all config values."""
from .paths import *
from .scheduler import *
from .redis import *
from .api import *
