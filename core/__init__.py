"""Core framework modules: logging, events, settings, threading."""
