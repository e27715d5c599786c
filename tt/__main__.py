import sys
from tt.common.logger import log

# Entry point for `python -m tt` and the `time-tracker` script
def run() -> None:
    try:
        from tt.cli import main
        log.info("=== INITIALIZED NEW SESSION ===")
        sys.exit(main())
    except SystemExit:
        raise
    except Exception:
        # Full stack trace, always
        log.exception("Uncaught exception in entrypoint, exiting")
        print("time-tracker: unrecoverable error, see the log for details", file=sys.stderr)
        sys.exit(1)

if __name__ == "__main__":
    run()
