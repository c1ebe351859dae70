import sys
from pathlib import Path

if __package__ in {None, ""}:
    project_root = Path(__file__).resolve().parent.parent
    sys.path.insert(0, str(project_root))

from readium import create_app  # noqa: E402
from readium.config import AppSettings  # noqa: E402
from readium.startup_check import verify_imports  # noqa: E402

CHECK_IMPORTS_MODE = "--check-imports" in sys.argv


def main() -> None:
    if CHECK_IMPORTS_MODE:
        verify_imports()
        print("Import check successful.")
        sys.exit(0)

    settings = AppSettings()
    app = create_app(settings)
    app.run(
        host="0.0.0.0",
        port=settings.PORT,
        debug=settings.is_development,
        threaded=True,
    )


if __name__ == "__main__":
    main()
