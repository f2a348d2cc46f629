"""Streamlit Cloud entry point.

Deployments launch ``streamlit_app.py`` as the main module; the app itself
lives in :mod:`wellness_app`, so we simply forward ``main`` here.
"""

from wellness_app import main as wellness_main


def main() -> None:
    """Invoke the wellness application."""

    wellness_main()


if __name__ == "__main__":  # pragma: no cover
    main()
