"""In-process stand-ins for the relay's external collaborators."""
