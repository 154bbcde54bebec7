"""
Worker Lambda handlers for the messaging core.

Workers:
- websocket_handler: WebSocket session handler ($connect, $disconnect, chat actions)
- event_to_message: EventBridge shift events -> system chat messages
"""
