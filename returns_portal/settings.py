"""
Returns Portal - Django Settings Configuration

Merchandise returns for an online store: eligibility checks, return
requests, admin approval, receipt inspection and refund settlement.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project
BASE_DIR = Path(__file__).resolve().parent.parent

# Security
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-change-this')
DEBUG = os.getenv('DEBUG', 'True') == 'True'
ALLOWED_HOSTS = ['*']


# ============================================================
# APPLICATION DEFINITION
# ============================================================

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Third party apps
    'rest_framework',           # Django REST Framework for APIs
    'drf_spectacular',          # Auto-generated API documentation

    # Our apps
    'returns',                  # Return lifecycle & refunds
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

ROOT_URLCONF = 'returns_portal.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]


# ============================================================
# DATABASE CONFIGURATION
# ============================================================
# SQLite for local development. On PostgreSQL/MySQL the row locks taken
# by the returns store (select_for_update) serialize admin actions per return.

DATABASES = {
    'default': {
        'ENGINE': os.getenv('DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.getenv('DB_NAME', BASE_DIR / 'db.sqlite3'),
        'USER': os.getenv('DB_USER', ''),
        'PASSWORD': os.getenv('DB_PASSWORD', ''),
        'HOST': os.getenv('DB_HOST', ''),
        'PORT': os.getenv('DB_PORT', ''),
    }
}


# ============================================================
# INTERNATIONALIZATION
# ============================================================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv('TIME_ZONE', 'UTC')
USE_I18N = True
USE_TZ = True


# ============================================================
# STATIC FILES
# ============================================================

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


# ============================================================
# DJANGO REST FRAMEWORK
# ============================================================

REST_FRAMEWORK = {
    # Rate limiting
    'DEFAULT_THROTTLE_CLASSES': [
        'rest_framework.throttling.UserRateThrottle',
    ],
    'DEFAULT_THROTTLE_RATES': {
        'user': os.getenv('API_USER_RATE', '1000/hour'),
    },

    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
        'rest_framework.renderers.BrowsableAPIRenderer',
    ],

    # OpenAPI schema generation
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',

    'DATETIME_FORMAT': '%Y-%m-%d %H:%M:%S',
}

SPECTACULAR_SETTINGS = {
    'TITLE': 'Returns Portal API',
    'DESCRIPTION': 'Customer return requests, admin lifecycle actions and refunds',
    'VERSION': '1.0.0',
}


# ============================================================
# CACHE CONFIGURATION
# ============================================================
# Used by DRF throttling

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'returns-portal-cache',
        'TIMEOUT': 300,
    }
}


# ============================================================
# CELERY CONFIGURATION
# ============================================================
# Customer notification emails are delivered by a Celery worker.
# In DEBUG the tasks run inline so no broker is needed.

CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://127.0.0.1:6379/0')
CELERY_RESULT_BACKEND = os.getenv('CELERY_BROKER_URL', 'redis://127.0.0.1:6379/0')
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_ALWAYS_EAGER = os.getenv('CELERY_TASK_ALWAYS_EAGER', str(DEBUG)) == 'True'

# Retry configuration for transient failures
CELERY_TASK_ACKS_LATE = True
CELERY_TASK_REJECT_ON_WORKER_LOST = True


# ============================================================
# EMAIL CONFIGURATION
# ============================================================

EMAIL_BACKEND = os.getenv('EMAIL_BACKEND', 'django.core.mail.backends.console.EmailBackend')
DEFAULT_FROM_EMAIL = os.getenv('DEFAULT_FROM_EMAIL', 'noreply@example.com')

# Used to build tracking links in customer emails
RETURNS_SITE_URL = os.getenv('RETURNS_SITE_URL', 'http://127.0.0.1:8000')


# ============================================================
# LOGGING CONFIGURATION
# ============================================================

LOG_DIR = BASE_DIR / 'logs'
LOG_DIR.mkdir(exist_ok=True)

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s %(levelname)s %(name)s %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
        },
        'file': {
            'class': 'logging.FileHandler',
            'filename': LOG_DIR / 'returns.log',
            'formatter': 'standard',
        },
    },
    'loggers': {
        'returns': {
            'handlers': ['console', 'file'],
            'level': os.getenv('RETURNS_LOG_LEVEL', 'INFO'),
            'propagate': True,
        },
    },
}


# ============================================================
# RETURN MODULE BUSINESS CONFIGURATION
# ============================================================
# Read once into returns.policy.ReturnPolicy. Unknown keys are rejected.

RETURN_POLICY = {
    'RETURN_PERIOD_DAYS': int(os.getenv('RETURN_PERIOD_DAYS', '14')),
    'SEND_NOTIFICATIONS': os.getenv('RETURN_SEND_NOTIFICATIONS', 'True') == 'True',
    'REQUIRE_PHOTOS': os.getenv('RETURN_REQUIRE_PHOTOS', 'False') == 'True',
    'RETURN_REASONS': [
        'defective',
        'wrong_item',
        'not_as_described',
        'size_issue',
        'changed_mind',
        'other',
    ],
    'COMPLETED_ORDER_STATUSES': ['shipped', 'delivered'],
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
