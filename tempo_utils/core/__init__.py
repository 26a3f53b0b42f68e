"""Core configuration, logging, constants and exceptions for tempo-utils."""
