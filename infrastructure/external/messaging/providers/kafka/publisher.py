from __future__ import annotations

import time
from typing import List

from core.config import KafkaSettings
from ...base import DeliveryReport, MessageSerializer, MessageSink, OutboundMessage
from ...exceptions import EventDeliveryError


def _to_confluent_headers(headers: dict[str, bytes]) -> List[tuple[str, bytes]]:
    return [(k, v) for k, v in headers.items()]


def build_producer_conf(cfg: KafkaSettings) -> dict:
    """KafkaSettings → confluent-kafka Producer 配置"""
    conf: dict = {
        "bootstrap.servers": cfg.bootstrap_servers,
        "client.id": cfg.client_id,
        "enable.idempotence": cfg.producer_enable_idempotence,
        "compression.type": cfg.producer_compression_type,
        "linger.ms": cfg.producer_linger_ms,
        "acks": cfg.producer_acks,
        "message.timeout.ms": cfg.producer_message_timeout_ms,
    }
    use_sasl = bool(cfg.sasl_mechanism)
    if cfg.tls_enable:
        conf["security.protocol"] = "SASL_SSL" if use_sasl else "SSL"
        conf.update({
            "ssl.ca.location": cfg.tls_ca_location,
            "ssl.certificate.location": cfg.tls_certificate,
            "ssl.key.location": cfg.tls_key,
            "enable.ssl.certificate.verification": cfg.tls_verify,
        })
    else:
        conf["security.protocol"] = "SASL_PLAINTEXT" if use_sasl else "PLAINTEXT"
    if use_sasl:
        conf.update({
            "sasl.mechanism": cfg.sasl_mechanism,
            "sasl.username": cfg.sasl_username,
            "sasl.password": cfg.sasl_password,
        })
    # confluent 不接受 None 值
    return {k: v for k, v in conf.items() if v is not None}


class KafkaSink(MessageSink):
    """confluent-kafka 同步发布器：produce 后只等待本条消息的投递回调"""

    def __init__(self, cfg: KafkaSettings, serializer: MessageSerializer) -> None:
        from confluent_kafka import Producer

        self.cfg = cfg
        self.serializer = serializer
        self._producer = Producer(build_producer_conf(cfg))
        self._wait_s = cfg.producer_flush_timeout_s

    def send(self, topic: str, message: OutboundMessage) -> DeliveryReport:
        value = message.value
        value_bytes = value if isinstance(value, (bytes, bytearray)) else self.serializer.dumps(value)
        meta_holder: dict = {}

        def _delivery(err, msg):
            if err is not None:
                meta_holder["error"] = err
            else:
                meta_holder["result"] = DeliveryReport(
                    topic=msg.topic(), partition=msg.partition(), offset=msg.offset(), timestamp=msg.timestamp()[1]
                )

        deadline = time.monotonic() + self._wait_s
        # 队列满时先 poll 释放空间再重试，直到截止时间
        while True:
            try:
                self._producer.produce(
                    topic=topic,
                    key=message.key,
                    value=bytes(value_bytes),
                    headers=_to_confluent_headers(message.headers),
                    on_delivery=_delivery,
                )
                break
            except BufferError:
                self._producer.poll(0.1)
                if time.monotonic() >= deadline:
                    raise EventDeliveryError("Producer queue full: timed out while retrying produce()", topic=topic)

        while "error" not in meta_holder and "result" not in meta_holder:
            self._producer.poll(0.05)
            if time.monotonic() >= deadline:
                raise EventDeliveryError("Delivery wait timeout for produced message", topic=topic)

        if "error" in meta_holder:
            raise EventDeliveryError(str(meta_holder["error"]), topic=topic)
        return meta_holder["result"]

    def close(self) -> None:
        remaining = self._producer.flush(self._wait_s)
        if remaining:
            raise EventDeliveryError(f"{remaining} message(s) still queued at close")
