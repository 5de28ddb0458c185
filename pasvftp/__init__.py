"""Passive-mode file transfer server and client on a reactor-style TCP networking library."""

__version__ = "0.1.0"