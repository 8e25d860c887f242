"""doit-code: track TODO/FIXME/HACK/NOTE/BUG comments as a reconciled task list."""

__version__ = "0.3.0"
