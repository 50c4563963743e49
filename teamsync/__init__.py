"""Read team data and synchronise it with Zulip user groups and streams."""

__version__ = "0.1.0"