"""Schemas for queue statistics and scheduled sweep triggers."""

from pydantic import BaseModel


class QueueStatsRead(BaseModel):
    waiting: int
    completed: int
    failed: int


class SweepResponse(BaseModel):
    queued: int


class QueueRequestResponse(BaseModel):
    queued: bool


__all__ = ["QueueRequestResponse", "QueueStatsRead", "SweepResponse"]
