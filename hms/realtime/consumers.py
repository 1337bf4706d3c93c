import json
from channels.generic.websocket import AsyncWebsocketConsumer


class UpdatesConsumer(AsyncWebsocketConsumer):
    """Pushes cache refreshes and clinical alerts to connected dashboards."""
    GROUP = "updates"

    async def connect(self):
        user = self.scope.get("user")
        if user is None or not user.is_authenticated or getattr(user, "role", "") == "patient":
            await self.close(code=4003)
            return
        await self.channel_layer.group_add(self.GROUP, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "message": "connected"}))

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(self.GROUP, self.channel_name)

    async def broadcast_refresh(self, event):
        # event: {"type": "broadcast.refresh", "version": int, "ts": "...", "keys": [...]}
        await self.send(json.dumps(event))

    async def lab_critical(self, event):
        await self.send(json.dumps(event))

    async def blood_low_stock(self, event):
        await self.send(json.dumps(event))
