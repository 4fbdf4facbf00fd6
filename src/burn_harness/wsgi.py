"""WSGI entry point for running under a WSGI server."""

import atexit

from burn_harness.app import create_app

app = create_app()

# The server owns signal handling; still stop every unit when the worker exits
atexit.register(app.extensions["orchestrator"].shutdown_all)

if __name__ == "__main__":
    app.run()
