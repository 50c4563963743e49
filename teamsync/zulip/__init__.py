"""Zulip API client and user group and stream membership synchronisation."""