"""
Test package for the service lifecycle.

- unit/: controller, dispatcher, listener, health and configuration behaviour
- integration/: real loopback listeners driven through the full lifecycle
"""
