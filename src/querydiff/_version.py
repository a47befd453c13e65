VERSION = "0.3.0"
__version__ = VERSION
