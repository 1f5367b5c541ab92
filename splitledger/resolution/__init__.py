"""Participant resolution package."""

from splitledger.resolution.resolver import ParticipantResolver

__all__ = ["ParticipantResolver"]
