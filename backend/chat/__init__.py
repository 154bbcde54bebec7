"""
Real-time messaging core.

Modules:
- keys: participant keys, conversation and message ids
- types: connection/conversation/message records and outbound payloads
- registry / conversations / messages: DynamoDB-backed stores
- names: display-name resolution with a bounded per-process cache
- dispatcher: pushes payloads to WebSocket connections
- service: shared send-and-deliver pipeline
- events: marketplace domain events (templates + publishing)
"""
