"""
Main command-line interface for pyems.

This script runs the EMS bridge or sends a single frame to the EMS server.
"""

import argparse
import asyncio
import logging

from pyems.api import APIServer
from pyems.bridge import EMSBridge
from pyems.config import ConfigError, EMSConfig, load_config
from pyems.listener import LoggingListener
from pyems.protocol import EMSSession


def build_config(args) -> EMSConfig:
    config = load_config(args.config) if args.config else EMSConfig()
    return config.apply_args_override(args)


async def run_bridge(config: EMSConfig, config_path, api_host: str, api_port: int):
    """Run the bridge and its admin API until interrupted."""
    bridge = EMSBridge(config, config_path=config_path)
    bridge.register_listener(LoggingListener(logging.getLogger("pyems.events")))
    api = APIServer(bridge, api_host, api_port)

    await bridge.open()
    await api.start()
    print(f"EMS bridge listening on {bridge.ems.server_address}, admin API on {api.url}")
    try:
        await asyncio.Event().wait()
    finally:
        await api.stop()
        await bridge.close()


async def send_frame(config: EMSConfig, data: str):
    """Send one frame to the EMS server and wait briefly for its answer."""
    print(f"Connecting to EMS at {config.server_ip}:{config.server_port}...")
    session = EMSSession(LoggingListener(), config.server_ip, config.server_port)
    sent = await session.client_send(data)
    if sent:
        # Give the EMS a moment to acknowledge
        await asyncio.sleep(1)
        print("Done")
    else:
        print("Send failed")
    session.close()


def main():
    parser = argparse.ArgumentParser(description="Bridge EMS to a Biamp Tesira")
    parser.add_argument("--config", help="EMS_Config.csv path")
    parser.add_argument("--listen-host", help="EMS server bind address (default: 0.0.0.0)")
    parser.add_argument("--listen-port", type=int, help="EMS server port (default: 53124)")
    parser.add_argument("--server-ip", help="EMS server address to send requests to")
    parser.add_argument("--server-port", type=int, help="EMS server port to send requests to")
    parser.add_argument("--biamp-ip", help="Biamp Tesira address")
    parser.add_argument("--api-host", default="127.0.0.1", help="Admin API bind address (default: 127.0.0.1)")
    parser.add_argument("--api-port", type=int, default=8080, help="Admin API port (default: 8080)")
    parser.add_argument("--debug", action="store_true", default=None, help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Run command
    subparsers.add_parser("run", help="Run the bridge until interrupted")

    # Send command
    send_parser = subparsers.add_parser("send", help="Send one frame to the EMS server")
    send_parser.add_argument("data", help="Frame to send, e.g. '{[Room][Status][RM01][1]}'")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = build_config(args)
    except ConfigError as e:
        parser.error(str(e))

    if args.command == "run":
        try:
            asyncio.run(run_bridge(config, args.config, args.api_host, args.api_port))
        except KeyboardInterrupt:
            print("Stopped")
    elif args.command == "send":
        asyncio.run(send_frame(config, args.data))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
