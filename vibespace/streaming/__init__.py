"""Moment generation, access control and NATS publishing of world moments."""

__all__ = ["access_control", "moment_generator", "nats_client", "service"]