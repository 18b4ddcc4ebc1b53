import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    # Streamlit re-executes the page script on every interaction
    logger = logging.getLogger("thrive")
    logger.setLevel(level.upper())
    if not any(getattr(h, "_thrive", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._thrive = True
        logger.addHandler(handler)
    return logger
