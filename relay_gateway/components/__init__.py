"""
Relay Components.

Organized into domain-specific modules:
- core/       - Foundational components (constants, clock, context)
- connection/ - Connection registry, transport and heartbeat
- events/     - Frame types, event builders and JSON codec
- history/    - Rolling chat history
- endpoints/  - WebSocket endpoint
"""
