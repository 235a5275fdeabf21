"""dockship: one-shot deployment of a Dockerized git repository to a remote host."""

__version__ = "0.1.0"
