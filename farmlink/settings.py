"""
Django settings for farmlink project.

Values come from the environment (optionally a local .env file). Without a
database or Redis configured the project falls back to SQLite, the local
memory cache and the in-memory channel layer, which is what the test suite
runs against.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def env_int(name, default):
    value = os.getenv(name)
    return int(value) if value not in (None, '') else default


SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-farmlink-development-key')

DEBUG = env_bool('DEBUG', False)

ALLOWED_HOSTS = [h for h in os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if h]


INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'channels',
    'event_bus',
    'users',
    'dmessages',
    'conversations',
    'websocket_chat',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'farmlink.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

ASGI_APPLICATION = 'farmlink.asgi.application'


# Database
# The message store must answer within MESSAGE_STORE_TIMEOUT seconds; a send
# that times out is reported as a transient store error.
MESSAGE_STORE_TIMEOUT = env_int('MESSAGE_STORE_TIMEOUT', 5)

if os.getenv('DB_NAME'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('DB_NAME'),
            'USER': os.getenv('DB_USER', 'farmlink'),
            'PASSWORD': os.getenv('DB_PASSWORD', ''),
            'HOST': os.getenv('DB_HOST', 'localhost'),
            'PORT': os.getenv('DB_PORT', '5432'),
            'CONN_MAX_AGE': env_int('DB_CONN_MAX_AGE', 60),
            'OPTIONS': {
                'connect_timeout': MESSAGE_STORE_TIMEOUT,
                'options': f'-c statement_timeout={MESSAGE_STORE_TIMEOUT * 1000}',
            },
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / os.getenv('SQLITE_NAME', 'db.sqlite3'),
            'OPTIONS': {
                'timeout': MESSAGE_STORE_TIMEOUT,
            },
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# Cache and channel layer
REDIS_URL = os.getenv('REDIS_URL')

if REDIS_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.redis.RedisCache',
            'LOCATION': REDIS_URL,
        }
    }
    CHANNEL_LAYERS = {
        'default': {
            'BACKEND': 'channels_redis.core.RedisChannelLayer',
            'CONFIG': {
                'hosts': [REDIS_URL],
            },
        }
    }
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'farmlink',
        }
    }
    CHANNEL_LAYERS = {
        'default': {
            'BACKEND': 'channels.layers.InMemoryChannelLayer',
        }
    }


REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'farmlink.authentication.JWTAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'EXCEPTION_HANDLER': 'farmlink.exceptions.messaging_exception_handler',
    'UNAUTHENTICATED_USER': None,
}


# JWT issued by the identity service
JWT_SECRET = os.getenv('JWT_SECRET', 'farmlink-local-jwt-secret-change-me-in-production')
JWT_ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
JWT_AUDIENCE = os.getenv('JWT_AUDIENCE', 'farmlink')
JWT_ISSUER = os.getenv('JWT_ISSUER', 'farmlink-identity')


# Identity provider
IDENTITY_PROVIDER_URL = os.getenv('IDENTITY_PROVIDER_URL')
IDENTITY_SERVICE_TOKEN = os.getenv('IDENTITY_SERVICE_TOKEN')
IDENTITY_CACHE_TTL = env_int('IDENTITY_CACHE_TTL', 300)
IDENTITY_REQUEST_TIMEOUT = env_int('IDENTITY_REQUEST_TIMEOUT', 3)


# Event bus
RABBITMQ_HOST = os.getenv('RABBITMQ_HOST', 'localhost')
RABBITMQ_PORT = env_int('RABBITMQ_PORT', 5672)
RABBITMQ_USER = os.getenv('RABBITMQ_USER', 'guest')
RABBITMQ_PASSWORD = os.getenv('RABBITMQ_PASSWORD', 'guest')
RABBITMQ_VHOST = os.getenv('RABBITMQ_VHOST', '/')


# Messaging
MESSAGE_MAX_LENGTH = env_int('MESSAGE_MAX_LENGTH', 5000)
MESSAGE_PREVIEW_LENGTH = 100
CONVERSATION_PAGE_SIZE = 20
CONVERSATION_PAGE_SIZE_MAX = 50
MESSAGE_PAGE_SIZE = 50
MESSAGE_PAGE_SIZE_MAX = 200
MESSAGE_DELIVERY_ASYNC = env_bool('MESSAGE_DELIVERY_ASYNC', True)
MESSAGE_DELIVERY_WORKERS = env_int('MESSAGE_DELIVERY_WORKERS', 4)
RECONCILE_TOLERANCE_SECONDS = 30
MESSAGE_SEARCH_LIMIT = 20
MESSAGE_SEARCH_LIMIT_MAX = 100
MESSAGE_SEARCH_MIN_LENGTH = 2


# WebSocket
WEBSOCKET_MAX_MESSAGE_SIZE = 64 * 1024
WEBSOCKET_HEARTBEAT_INTERVAL = env_int('WEBSOCKET_HEARTBEAT_INTERVAL', 30)
WEBSOCKET_CONNECTION_TIMEOUT = env_int('WEBSOCKET_CONNECTION_TIMEOUT', 3600)
WEBSOCKET_RATE_LIMIT = env_int('WEBSOCKET_RATE_LIMIT', 30)


# Media
MEDIA_URL = '/media/'
MEDIA_ROOT = BASE_DIR / 'media'
MEDIA_MAX_UPLOAD_SIZE = 50 * 1024 * 1024
MEDIA_ALLOWED_TYPES = [
    'image/jpeg',
    'image/png',
    'image/gif',
    'image/webp',
    'video/mp4',
    'audio/mpeg',
    'audio/ogg',
    'application/pdf',
]


# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': os.getenv('LOG_LEVEL', 'INFO'),
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': os.getenv('DJANGO_LOG_LEVEL', 'WARNING'),
            'propagate': False,
        },
    },
}
