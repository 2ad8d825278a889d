"""
Parley Client - headless line-protocol client
Useful for scripting, bots and integration tests; browsers use the
WebSocket listener instead
"""

import asyncio
import argparse
import logging
import json
from typing import Any, Callable, Dict, List, Optional

from protocol import Protocol, MessageType


logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger('Parley-Client')


class ParleyClient:
    """Connects over TCP and exposes inbound events as a queue"""

    def __init__(self, server_host: str, server_port: int, username: Optional[str] = None):
        self.server_host = server_host
        self.server_port = server_port
        self.username = username
        self.conn_id: Optional[str] = None

        # Network
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.receive_task: Optional[asyncio.Task] = None
        self.running = False

        # State
        self.server_id: Optional[str] = None
        self.current_channel: Optional[str] = None
        self.events: asyncio.Queue = asyncio.Queue()
        self._backlog: List[Dict[str, Any]] = []

    async def connect(self, timeout: float = 10.0) -> str:
        """Connect and wait for the connection id greeting"""
        self.reader, self.writer = await asyncio.wait_for(
            asyncio.open_connection(self.server_host, self.server_port),
            timeout=timeout
        )
        self.running = True
        self.receive_task = asyncio.create_task(self.receive_loop())
        greeting = await self.wait_for(MessageType.CONNECTED, timeout=timeout)
        self.conn_id = greeting['conn_id']
        return self.conn_id

    async def close(self):
        """Disconnect from the server"""
        self.running = False
        if self.writer:
            try:
                await self.send(Protocol.disconnect())
            except ConnectionError:
                pass
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except ConnectionError:
                pass
        if self.receive_task:
            self.receive_task.cancel()
            try:
                await self.receive_task
            except asyncio.CancelledError:
                pass

    async def send(self, message: str):
        """Send a frame to the server"""
        self.writer.write(message.encode('utf-8') + b'\n')
        await self.writer.drain()

    async def receive_loop(self):
        """Receive frames from server"""
        try:
            while self.running:
                data = await self.reader.readline()
                if not data:
                    break

                message_str = data.decode('utf-8').strip()
                if not message_str:
                    continue

                try:
                    message = json.loads(message_str)
                except json.JSONDecodeError:
                    logger.error(f"Invalid JSON: {message_str}")
                    continue
                await self.events.put(message)

        except asyncio.CancelledError:
            pass
        except ConnectionError as e:
            logger.warning(f"Connection lost: {e}")
        finally:
            self.running = False

    async def wait_for(self, msg_type: MessageType, timeout: float = 5.0,
                       predicate: Optional[Callable[[dict], bool]] = None) -> Dict[str, Any]:
        """
        Wait for the next event of a type

        Events of other types received meanwhile are kept and returned by
        later calls.

        Raises:
            asyncio.TimeoutError if nothing matches in time
        """
        def matches(event):
            return event.get('type') == msg_type.value and (predicate is None or predicate(event))

        for i, event in enumerate(self._backlog):
            if matches(event):
                return self._backlog.pop(i)

        async def next_match():
            while True:
                event = await self.events.get()
                if matches(event):
                    return event
                self._backlog.append(event)

        return await asyncio.wait_for(next_match(), timeout=timeout)

    def drain(self) -> List[Dict[str, Any]]:
        """All events received so far and not yet consumed"""
        pending = self._backlog
        self._backlog = []
        while not self.events.empty():
            pending.append(self.events.get_nowait())
        return pending

    # Requests

    async def join_server(self, server_id: str, username: Optional[str] = None):
        self.username = username or self.username
        self.server_id = server_id
        await self.send(Protocol.join_server(self.username, server_id))

    async def join_channel(self, channel_id: str):
        self.current_channel = channel_id
        await self.send(Protocol.join_channel(channel_id))

    async def send_message(self, channel_id: str, text: str):
        await self.send(Protocol.send_message(channel_id, text))

    async def join_voice(self, channel_id: str):
        await self.send(Protocol.join_voice(channel_id))

    async def leave_voice(self, channel_id: Optional[str] = None):
        await self.send(Protocol.leave_voice(channel_id))

    async def signal(self, msg_type: MessageType, target: str, payload: Any):
        await self.send(Protocol.signal(msg_type, target, payload))

    # Interactive mode

    def print_event(self, event: Dict[str, Any]):
        msg_type = event.get('type')
        if msg_type == MessageType.NEW_MESSAGE.value:
            message = event['message']
            print(f"[{event['channel_id']}] <{message['username']}> {message['text']}")
        elif msg_type == MessageType.USER_LIST.value:
            print(f"* Online: {', '.join(event['members'])}")
        elif msg_type in (MessageType.MESSAGE_ERROR.value, MessageType.VOICE_ERROR.value,
                          MessageType.PERMISSION_ERROR.value, MessageType.ERROR.value):
            print(f"! {event.get('error')}")
        else:
            payload = Protocol.payload(event)
            print(f"* {msg_type}: {json.dumps(payload)}")

    async def print_loop(self):
        while self.running:
            event = await self.events.get()
            self.print_event(event)

    async def input_loop(self):
        """Handle user input"""
        print("Commands: /join <channel>, /voice <channel>, /leave-voice, /quit")
        while self.running:
            try:
                line = await asyncio.get_event_loop().run_in_executor(None, input)
            except EOFError:
                break

            line = line.strip()
            if not line:
                continue

            parts = line.split(maxsplit=1)
            cmd = parts[0].lower()
            args = parts[1] if len(parts) > 1 else ""

            if cmd == '/quit':
                break
            elif cmd == '/join' and args:
                await self.join_channel(args)
            elif cmd == '/voice' and args:
                await self.join_voice(args)
            elif cmd == '/leave-voice':
                await self.leave_voice()
            elif line.startswith('/'):
                print(f"! Unknown command: {cmd}")
            elif self.current_channel:
                await self.send_message(self.current_channel, line)
            else:
                print("! Not in a channel. Use /join <channel>")

    async def run(self, server_id: str, channel_id: Optional[str] = None):
        """Run the interactive client"""
        try:
            await self.connect()
        except (OSError, asyncio.TimeoutError) as e:
            print(f"Connection failed: {e}")
            return

        await self.join_server(server_id)
        if channel_id:
            await self.join_channel(channel_id)

        printer = asyncio.create_task(self.print_loop())
        try:
            await self.input_loop()
        finally:
            printer.cancel()
            await self.close()


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description='Parley line-protocol client')
    parser.add_argument('--server', default='localhost', help='Server address')
    parser.add_argument('--port', type=int, default=6680, help='Server port')
    parser.add_argument('--username', required=True, help='Your username')
    parser.add_argument('--server-id', default='demo', help='Chat server to join')
    parser.add_argument('--channel', default='general', help='Text channel to join')
    parser.add_argument('--verbose', action='store_true', help='Enable verbose logging')

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    client = ParleyClient(args.server, args.port, args.username)

    try:
        asyncio.run(client.run(args.server_id, args.channel))
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == '__main__':
    main()
