"""
Logging configuration for the ferry ticketing service.
"""

import logging
import logging.config

from ferry.config import settings

LOGGING_CONFIG = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        },
    },
    'handlers': {
        'console': {
            'level': 'DEBUG' if settings.DEBUG else 'INFO',
            'class': 'logging.StreamHandler',
            'formatter': 'standard'
        },
    },
    'loggers': {
        '': {  # Root logger
            'handlers': ['console'],
            'level': settings.LOG_LEVEL,
            'propagate': True
        },
        'ferry': {
            'level': settings.LOG_LEVEL,
            'propagate': True
        },
        'sqlalchemy.engine': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False
        },
        'uvicorn.access': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False
        }
    }
}

def setup_logging():
    """Configure application logging"""
    logging.config.dictConfig(LOGGING_CONFIG)
    logger = logging.getLogger("ferry")
    logger.info("Logging initialized with level: %s", settings.LOG_LEVEL)
    return logger
