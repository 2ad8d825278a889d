"""
Parley Server - real-time channel, presence and signaling relay
Speaks newline-delimited JSON over TCP and JSON text frames over WebSocket
"""

import asyncio
import logging
import argparse
import os
from typing import Awaitable, Callable, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from config_manager import ConfigManager
from directory import ServerDirectory
from lifecycle import ConnectionLifecycleManager
from protocol import Protocol, MessageType, SIGNALING_TYPES, MEDIA_TOGGLES
from rate_limiter import RateLimiter


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('Parley-Server')


class Connection:
    """
    Outbound side of one client session.

    The core pushes frames synchronously; a writer task drains them to the
    socket so a slow client never blocks delivery to anyone else.
    """

    def __init__(self, address: str, send: Callable[[str], Awaitable[None]]):
        self.address = address
        self.conn_id: Optional[str] = None
        self._send = send
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.writer_task: Optional[asyncio.Task] = None

    def push(self, frame: str):
        """Queue a frame for delivery"""
        if not self.closed:
            self.queue.put_nowait(frame)

    def start(self):
        self.writer_task = asyncio.create_task(self._writer_loop())

    async def _writer_loop(self):
        while True:
            frame = await self.queue.get()
            if frame is None:
                break
            try:
                await self._send(frame)
            except (ConnectionError, ConnectionClosed) as e:
                logger.debug(f"Send to {self.address} failed: {e}")
                self.closed = True
                break

    async def close(self):
        """Flush queued frames and stop the writer"""
        if not self.closed:
            self.closed = True
            self.queue.put_nowait(None)
        if self.writer_task is not None:
            await self.writer_task

    def __repr__(self):
        return f"Connection({self.conn_id or 'pending'} @ {self.address})"


class ParleyServer:
    """Transport front-end feeding the connection lifecycle manager"""

    def __init__(self, host=None, port=None, ws_port=None, data_dir=None,
                 config_file='server_config.json', enable_websocket=None):
        # Load server configuration, explicit arguments win
        self.config = ConfigManager(config_file)
        self.config.override('host', value=host)
        self.config.override('port', value=port)
        self.config.override('ws_port', value=ws_port)
        self.config.override('data_dir', value=data_dir)
        self.config.override('enable_websocket', value=enable_websocket)

        self.host = self.config.get('host')
        self.port = self.config.get('port')
        self.ws_port = self.config.get('ws_port')
        self.enable_websocket = self.config.get('enable_websocket', default=True)
        self.data_dir = self.config.get('data_dir')
        self.max_connections = self.config.get('max_connections')
        self.max_message_size = self.config.get('max_message_size')
        self.read_timeout = self.config.get('read_timeout')

        # Ensure data directory exists
        os.makedirs(self.data_dir, exist_ok=True)

        self.directory = ServerDirectory(
            data_file=os.path.join(self.data_dir, 'directory.json'),
            history_limit=self.config.get('history_limit')
        )
        self.lifecycle = ConnectionLifecycleManager(
            self.directory,
            message_limiter=RateLimiter(**self.config.get('rate_limits', 'messages')),
            signal_limiter=RateLimiter(**self.config.get('rate_limits', 'signaling'))
        )

        self.connections: Dict[str, Connection] = {}  # conn_id -> Connection
        self.tcp_server: Optional[asyncio.AbstractServer] = None
        self.ws_server = None

    async def start_listening(self):
        """Bind the TCP (and WebSocket) listeners"""
        self.tcp_server = await asyncio.start_server(
            self.handle_client, self.host, self.port, limit=self.max_message_size
        )
        self.port = self.tcp_server.sockets[0].getsockname()[1]
        logger.info(f'TCP listener on {self.host}:{self.port}')

        if self.enable_websocket:
            self.ws_server = await websockets.serve(
                self.handle_websocket, self.host, self.ws_port, max_size=self.max_message_size
            )
            self.ws_port = list(self.ws_server.sockets)[0].getsockname()[1]
            logger.info(f'WebSocket listener on ws://{self.host}:{self.ws_port}')

    async def start(self):
        """Start the server and run until cancelled"""
        await self.start_listening()
        logger.info('Signaling payloads are relayed without inspection')
        logger.info('Press Ctrl+C to stop')

        async with self.tcp_server:
            try:
                await self.tcp_server.serve_forever()
            except asyncio.CancelledError:
                pass
            finally:
                await self.shutdown()

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def open_connection(self, address: str, send: Callable[[str], Awaitable[None]]) -> Optional[Connection]:
        """Register a new transport session, or None when at capacity"""
        if len(self.connections) >= self.max_connections:
            logger.warning(f"Connection from {address} rejected: server at capacity")
            return None

        connection = Connection(address, send)
        connection.conn_id = self.lifecycle.connect(connection)
        self.connections[connection.conn_id] = connection
        connection.start()
        logger.info(f"New connection {connection.conn_id} from {address}")
        return connection

    async def close_connection(self, connection: Connection):
        """Run disconnect cleanup exactly once and stop the writer"""
        if self.connections.pop(connection.conn_id, None) is not None:
            self.lifecycle.disconnect(connection.conn_id)
        await connection.close()

    async def handle_frame(self, connection: Connection, raw: str) -> bool:
        """
        Parse and dispatch one inbound frame

        Returns:
            False when the client asked to disconnect
        """
        raw = raw.strip()
        if not raw:
            return True

        if len(raw) > self.max_message_size:
            logger.warning(f"Message too large from {connection}")
            connection.push(Protocol.error("Message too large"))
            return True

        try:
            message = Protocol.parse_message(raw)
            msg_type = Protocol.message_type(message)
        except ValueError as e:
            logger.warning(f"Invalid message from {connection}: {e}")
            connection.push(Protocol.error(str(e)))
            return True

        return await self.handle_message(connection.conn_id, msg_type, message)

    async def handle_message(self, conn_id: str, msg_type: MessageType, message: dict) -> bool:
        """Route message based on type"""
        lifecycle = self.lifecycle

        if msg_type == MessageType.JOIN_SERVER:
            lifecycle.join_server(conn_id, message.get('username'), message.get('server_id'))

        elif msg_type == MessageType.JOIN_CHANNEL:
            await lifecycle.join_channel(conn_id, message.get('channel_id'))

        elif msg_type == MessageType.LEAVE_CHANNEL:
            lifecycle.leave_channel(conn_id, message.get('channel_id'))

        elif msg_type == MessageType.SEND_MESSAGE:
            await lifecycle.send_message(conn_id, message.get('channel_id'), message.get('text'))

        elif msg_type == MessageType.GET_MESSAGES:
            await lifecycle.get_messages(conn_id, message.get('channel_id'))

        elif msg_type == MessageType.JOIN_VOICE:
            lifecycle.join_voice(conn_id, message.get('channel_id'))

        elif msg_type == MessageType.LEAVE_VOICE:
            lifecycle.leave_voice(conn_id, message.get('channel_id'))

        elif msg_type in SIGNALING_TYPES:
            lifecycle.relay_signal(conn_id, msg_type, message.get('target'), message.get('payload'))

        elif msg_type in MEDIA_TOGGLES:
            lifecycle.toggle_media(conn_id, msg_type, message.get('enabled'))

        elif msg_type == MessageType.CREATE_CHANNEL:
            lifecycle.create_channel(
                conn_id,
                message.get('name'),
                message.get('channel_type'),
                message.get('settings')
            )

        elif msg_type == MessageType.UPDATE_CHANNEL_SETTINGS:
            lifecycle.update_channel_settings(conn_id, message.get('channel_id'), message.get('settings'))

        elif msg_type == MessageType.DELETE_CHANNEL:
            lifecycle.delete_channel(conn_id, message.get('channel_id'))

        elif msg_type == MessageType.DISCONNECT:
            return False

        else:
            lifecycle.dispatcher.send(conn_id, MessageType.ERROR, {
                "error": f"Unsupported message type: {msg_type.value}"
            })

        return True

    # ------------------------------------------------------------------
    # Transports
    # ------------------------------------------------------------------

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Handle a newline-delimited JSON client"""
        peername = writer.get_extra_info('peername')
        address = f"{peername[0]}:{peername[1]}" if peername else "unknown"

        async def send(frame: str):
            writer.write(frame.encode('utf-8') + b'\n')
            await writer.drain()

        connection = self.open_connection(address, send)
        if connection is None:
            try:
                await send(Protocol.error("Server at maximum capacity, please try again later"))
            except ConnectionError:
                pass
            writer.close()
            return

        try:
            while True:
                try:
                    if self.read_timeout:
                        data = await asyncio.wait_for(reader.readline(), timeout=self.read_timeout)
                    else:
                        data = await reader.readline()
                except asyncio.TimeoutError:
                    logger.warning(f"Read timeout for {connection}")
                    connection.push(Protocol.error("Read timeout"))
                    break
                except ValueError:
                    # line longer than the stream limit
                    logger.warning(f"Message too large from {connection}")
                    connection.push(Protocol.error("Message too large"))
                    break

                if not data:
                    break

                try:
                    raw = data.decode('utf-8')
                except UnicodeDecodeError:
                    connection.push(Protocol.error("Messages must be UTF-8"))
                    continue

                if not await self.handle_frame(connection, raw):
                    break

        except asyncio.CancelledError:
            pass
        except ConnectionError as e:
            logger.debug(f"Connection {connection} dropped: {e}")
        except Exception as e:
            logger.error(f"Error handling client {connection}: {e}")
        finally:
            await self.close_connection(connection)
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def handle_websocket(self, websocket):
        """Handle a browser client over WebSocket"""
        peer = websocket.remote_address
        address = f"{peer[0]}:{peer[1]}" if peer else "unknown"

        connection = self.open_connection(address, websocket.send)
        if connection is None:
            await websocket.close(1013, "Server at maximum capacity")
            return

        try:
            async for raw in websocket:
                if isinstance(raw, bytes):
                    try:
                        raw = raw.decode('utf-8')
                    except UnicodeDecodeError:
                        connection.push(Protocol.error("Messages must be UTF-8"))
                        continue
                if not await self.handle_frame(connection, raw):
                    break
        except ConnectionClosed as e:
            logger.debug(f"WebSocket {connection} closed: {e}")
        except Exception as e:
            logger.error(f"Error handling websocket {connection}: {e}")
        finally:
            await self.close_connection(connection)

    async def shutdown(self):
        """Shutdown server gracefully"""
        logger.info("Starting server shutdown...")

        if self.ws_server is not None:
            self.ws_server.close()
            await self.ws_server.wait_closed()

        for connection in list(self.connections.values()):
            await self.close_connection(connection)

        # Save channels
        self.directory.save()
        logger.info("Server shutdown complete")


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description='Parley chat and signaling server')
    parser.add_argument('--host', help='Host to bind to')
    parser.add_argument('--port', type=int, help='TCP port to bind to')
    parser.add_argument('--ws-port', type=int, help='WebSocket port to bind to')
    parser.add_argument('--no-websocket', action='store_true', help='Disable the WebSocket listener')
    parser.add_argument('--data-dir', help='Directory for server data')
    parser.add_argument('--config', default='server_config.json', help='Server config file')
    parser.add_argument('--verbose', action='store_true', help='Enable verbose logging')

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    server = ParleyServer(
        host=args.host,
        port=args.port,
        ws_port=args.ws_port,
        data_dir=args.data_dir,
        config_file=args.config,
        enable_websocket=False if args.no_websocket else None
    )

    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")


if __name__ == '__main__':
    main()
