"""Mirror a directory between a server and its clients over TCP."""

__version__ = "0.1.0"