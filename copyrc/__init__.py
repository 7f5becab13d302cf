"""copyrc: copy files from remote repositories and keep track of them."""

__version__ = "0.4.0"
