"""Load Red Hat, Ubuntu, Wolfi, Rocky Linux and SUSE vulnerability feeds into an in-memory store."""

__version__ = "0.1.0"