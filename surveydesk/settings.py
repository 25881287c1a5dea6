import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {'1', 'true', 'yes', 'on'}


SECRET_KEY = os.environ.get('SURVEYDESK_SECRET_KEY', 'surveydesk-insecure-development-key')
DEBUG = _env_bool('SURVEYDESK_DEBUG', default=False)
ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get('SURVEYDESK_ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',')
    if host.strip()
]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'surveydesk.apps.dual_survey',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
]

ROOT_URLCONF = 'surveydesk.urls'

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

_db_engine = os.environ.get('SURVEYDESK_DB_ENGINE', 'sqlite')
if _db_engine == 'postgresql':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.environ.get('SURVEYDESK_DB_NAME', 'surveydesk'),
            'USER': os.environ.get('SURVEYDESK_DB_USER', 'surveydesk'),
            'PASSWORD': os.environ.get('SURVEYDESK_DB_PASSWORD', ''),
            'HOST': os.environ.get('SURVEYDESK_DB_HOST', 'localhost'),
            'PORT': os.environ.get('SURVEYDESK_DB_PORT', '5432'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.environ.get('SURVEYDESK_DB_NAME', str(BASE_DIR / 'surveydesk.sqlite3')),
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

USE_TZ = True
TIME_ZONE = 'Africa/Lagos'
LANGUAGE_CODE = 'en-us'
USE_I18N = True

STATIC_URL = 'static/'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': (
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ),
    'DEFAULT_PERMISSION_CLASSES': ('rest_framework.permissions.IsAuthenticated',),
}

EMAIL_BACKEND = os.environ.get('SURVEYDESK_EMAIL_BACKEND', 'django.core.mail.backends.console.EmailBackend')
DEFAULT_FROM_EMAIL = os.environ.get('SURVEYDESK_FROM_EMAIL', 'no-reply@surveydesk.local')

DUAL_SURVEY = {
    'DEFAULT_OVERALL_DEADLINE_DAYS': int(os.environ.get('SURVEYDESK_OVERALL_DEADLINE_DAYS', 7)),
    'DEFAULT_ASSIGNMENT_DEADLINE_DAYS': int(os.environ.get('SURVEYDESK_ASSIGNMENT_DEADLINE_DAYS', 5)),
    'MAX_ACTIVE_ASSIGNMENTS': int(os.environ.get('SURVEYDESK_MAX_ACTIVE_ASSIGNMENTS', 10)),
    'AUTO_CREATE_ON_SUBMIT': _env_bool('SURVEYDESK_AUTO_CREATE_ON_SUBMIT', default=True),
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'surveydesk': {
            'handlers': ['console'],
            'level': os.environ.get('SURVEYDESK_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
