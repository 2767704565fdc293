"""
Offline support: connectivity tracking and the deferred write queue.

Mutating calls go through `OfflineQueue.queue_or_run`; while offline they are
acknowledged with a `QUEUED` marker and replayed in order once back online.
"""
