# Einstiegspunkt der Anwendung.
# Erzeugt die QApplication und zeigt das Hauptfenster an.

import logging
import os
import sys

from PyQt6.QtWidgets import QApplication

from video_converter.app import create_app

LOG_LEVEL_ENV = "VIDEO_CONVERTER_LOG_LEVEL"


def main() -> None:
    level = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    app = QApplication(sys.argv)
    app.setApplicationName("Video Converter")
    app.setOrganizationName("video-converter")

    window = create_app()
    if window is None:
        sys.exit(1)

    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
