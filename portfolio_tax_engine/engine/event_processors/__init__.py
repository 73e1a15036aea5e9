# One processor per event kind, dispatched by the finance engine.
