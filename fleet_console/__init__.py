"""Drone fleet console client: registry REST client, push channel and mission view model."""
