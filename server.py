"""Gemini capsule server entry point and connection lifecycle orchestration."""

from __future__ import annotations

import argparse
import json
import logging
import os
import socket
import ssl
import sys
import threading
import time
from dataclasses import replace

from config import (
    LOG_FORMATS,
    SERVER_VERSION,
    ConfigError,
    ServerConfig,
    load_config,
    log_config,
)
from handlers.capsule_handlers import handle_request_line
from metrics import MetricsRegistry
from response import STATUS_TEMPORARY_FAILURE, GeminiError, GeminiResponse
from socket_handler import (
    ConnectionDeadline,
    MalformedFramingError,
    SocketTimeoutError,
    decode_request_line,
    receive_request_line,
    write_gemini_response,
)
from thread_pool import ThreadPool

logger = logging.getLogger(__name__)


def create_tls_context(cert_file: str, key_file: str) -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.load_cert_chain(certfile=cert_file, keyfile=key_file)
    return context


class GeminiServer:
    """Accepts TLS connections and answers exactly one request on each.

    With ``worker_count == 0`` every connection gets its own thread; a positive
    count routes connections through a bounded ThreadPool instead.
    """

    def __init__(self, config: ServerConfig, *, enable_tls: bool = True) -> None:
        self.config = config
        self.host = config.bind_host
        self.port = 0
        self.enable_tls = enable_tls
        self.metrics = MetricsRegistry()

        self._server_socket: socket.socket | None = None
        self._tls_context: ssl.SSLContext | None = None
        self._pool: ThreadPool | None = None
        self._running = False
        self._connection_seq = 0

    def start(self) -> None:
        """Bind, listen and serve until stop() is called."""
        if self.enable_tls:
            if not self.config.tls_cert_file or not self.config.tls_key_file:
                raise ConfigError("TLS is enabled but no certificate or key was configured")
            self._tls_context = create_tls_context(
                self.config.tls_cert_file, self.config.tls_key_file
            )

        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        with socket.socket(family, socket.SOCK_STREAM) as server_socket:
            self._server_socket = server_socket
            server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server_socket.bind((self.host, int(self.config.bind_port)))
            server_socket.listen(128)
            server_socket.settimeout(0.2)

            bound_port = server_socket.getsockname()[1]
            if self.config.bind_port != str(bound_port):
                self.config = replace(self.config, bind_port=str(bound_port))
            self.port = bound_port

            if self.config.worker_count > 0:
                self._pool = ThreadPool(
                    worker_count=self.config.worker_count,
                    queue_size=self.config.request_queue_size,
                    handler=self._handle_client,
                )
                self._pool.start()

            self._running = True
            logger.info("Started listening on %s", self.config.bind_addr)
            try:
                while self._running:
                    try:
                        client_socket, address = server_socket.accept()
                    except socket.timeout:
                        continue
                    except OSError:
                        break
                    self._admit(client_socket, address)
            finally:
                if self._pool is not None:
                    self._pool.shutdown()
                    self._pool = None
                logger.info("metrics=%s", json.dumps(self.metrics.snapshot(), sort_keys=True))

    def stop(self) -> None:
        self._running = False
        if self._server_socket is not None:
            self._server_socket.close()
            self._server_socket = None
        if self._pool is not None:
            self._pool.shutdown()
            self._pool = None

    def _admit(self, client_socket: socket.socket, address: tuple) -> None:
        if self._pool is not None:
            if not self._pool.submit(client_socket, address):
                self.metrics.connection_rejected()
                logger.warning("Worker queue full; dropping connection from %s", address[0])
                client_socket.close()
            return

        self._connection_seq += 1
        worker = threading.Thread(
            target=self._handle_client,
            args=(client_socket, address),
            name=f"gemini-conn-{self._connection_seq}",
            daemon=True,
        )
        worker.start()

    def _handle_client(self, client_socket: socket.socket, address: tuple) -> None:
        started_at = time.perf_counter()
        deadline = ConnectionDeadline.after(self.config.deadline_secs)
        self.metrics.connection_opened()
        try:
            with client_socket:
                stream = self._secure(client_socket, address, deadline)
                if stream is None:
                    return
                with stream:
                    self._serve(stream, address, deadline, started_at)
        finally:
            self.metrics.connection_closed()

    def _secure(
        self,
        client_socket: socket.socket,
        address: tuple,
        deadline: ConnectionDeadline,
    ) -> socket.socket | None:
        if self._tls_context is None:
            return client_socket
        try:
            deadline.arm(client_socket)
            return self._tls_context.wrap_socket(client_socket, server_side=True)
        except (SocketTimeoutError, OSError) as exc:
            self.metrics.record_handshake_error(exc.__class__.__name__)
            logger.warning("TLS handshake with %s failed: %s", address[0], exc)
            return None

    def _serve(
        self,
        stream: socket.socket,
        address: tuple,
        deadline: ConnectionDeadline,
        started_at: float,
    ) -> None:
        logger.debug("Handling connection from %s", address[0])
        try:
            raw_line = receive_request_line(stream, deadline)
        except (SocketTimeoutError, MalformedFramingError, OSError) as exc:
            self.metrics.record_read_error(exc.__class__.__name__)
            logger.warning("There was an error reading from %s: %s", address[0], exc)
            return

        target = "-"
        try:
            target = decode_request_line(raw_line)
            response = handle_request_line(target, self.config)
        except MalformedFramingError as exc:
            self.metrics.record_read_error(exc.__class__.__name__)
            logger.info("Closing connection from %s without reply: %s", address[0], exc)
            return
        except GeminiError as exc:
            logger.info("Rejected request line from %s: %s", address[0], exc)
            response = GeminiResponse.from_error(exc)
        except Exception:
            logger.exception("Unhandled error while handling %r", target)
            response = GeminiResponse.failure(STATUS_TEMPORARY_FAILURE, "Temporary failure")

        try:
            bytes_sent = write_gemini_response(stream, response, deadline)
        except (SocketTimeoutError, OSError) as exc:
            self.metrics.record_write_error(exc.__class__.__name__)
            logger.warning("There was an error writing to %s: %s", address[0], exc)
            return

        self._record_and_log(
            address=address,
            target=target,
            response=response,
            bytes_in=len(raw_line),
            bytes_out=bytes_sent,
            started_at=started_at,
        )

    def _record_and_log(
        self,
        *,
        address: tuple,
        target: str,
        response: GeminiResponse,
        bytes_in: int,
        bytes_out: int,
        started_at: float,
    ) -> None:
        duration_ms = (time.perf_counter() - started_at) * 1000
        self.metrics.record_response(
            status_code=response.status_code,
            duration_ms=duration_ms,
            bytes_sent=bytes_out,
        )
        event = {
            "client": address[0],
            "target": target,
            "status": response.status_code,
            "meta": response.meta,
            "bytes_in": bytes_in,
            "bytes_out": bytes_out,
            "duration_ms": round(duration_ms, 3),
        }
        if self.config.log_format == "json":
            logger.info(json.dumps(event, sort_keys=True))
            return

        logger.info(
            "client=%s target=%s status=%s meta=%r bytes_in=%s bytes_out=%s duration_ms=%.2f",
            event["client"],
            event["target"],
            event["status"],
            event["meta"],
            event["bytes_in"],
            event["bytes_out"],
            duration_ms,
        )


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a Gemini capsule server")
    parser.add_argument("--hostname", help="hostname requests must target")
    parser.add_argument("--bind", dest="bind_addr", help="listen address, host:port")
    parser.add_argument("--root", dest="content_root", help="directory to serve")
    parser.add_argument("--deadline", dest="deadline_secs", type=int, help="per-connection deadline in seconds")
    parser.add_argument("--tls-cert", dest="tls_cert_file", help="PEM certificate file")
    parser.add_argument("--tls-key", dest="tls_key_file", help="PEM private key file")
    parser.add_argument("--workers", dest="worker_count", type=int, help="0 for one thread per connection")
    parser.add_argument("--queue-size", dest="request_queue_size", type=int)
    parser.add_argument("--log-format", choices=LOG_FORMATS)
    parser.add_argument("--version", action="version", version=f"%(prog)s {SERVER_VERSION}")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    logger.info("Starting Gemini capsule server version %s", SERVER_VERSION)

    try:
        config = load_config(os.environ, **vars(args))
    except ConfigError as exc:
        logger.error("Failed to initialize: %s", exc)
        return 1
    log_config(config)

    server = GeminiServer(config)
    try:
        server.start()
    except KeyboardInterrupt:
        server.stop()
    except OSError as exc:
        logger.error("Unable to start server: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
