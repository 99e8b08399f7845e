"""deploybox - upload an application bundle, get a time-boxed container."""

__version__ = "0.1.0"
