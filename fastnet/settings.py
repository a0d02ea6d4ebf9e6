"""
Django settings for FASTNET Wi-Fi Hotspot Billing
"""

from pathlib import Path
from decouple import config, Csv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = config(
    "SECRET_KEY", default="django-insecure-fastnet-dev-key-change-in-production"
)

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = config("DEBUG", default=False, cast=bool)

ALLOWED_HOSTS = config(
    "ALLOWED_HOSTS",
    default="localhost,127.0.0.1,testserver",
    cast=Csv(),
)

# Application definition
INSTALLED_APPS = [
    "jazzmin",
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "corsheaders",
    "django_crontab",  # For scheduled tasks
    "billing",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "fastnet.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "fastnet.wsgi.application"

# Database
# SQLite by default; set DB_ENGINE=django.db.backends.mysql for production
DB_ENGINE = config("DB_ENGINE", default="django.db.backends.sqlite3")

if DB_ENGINE == "django.db.backends.sqlite3":
    DATABASES = {
        "default": {
            "ENGINE": DB_ENGINE,
            "NAME": config("DB_NAME", default=str(BASE_DIR / "fastnet.sqlite3")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": DB_ENGINE,
            "NAME": config("DB_NAME", default="fastnet"),
            "USER": config("DB_USER", default="root"),
            "PASSWORD": config("DB_PASSWORD", default=""),
            "HOST": config("DB_HOST", default="localhost"),
            "PORT": config("DB_PORT", default="3306"),
            "OPTIONS": {
                "charset": "utf8mb4",
                "init_command": "SET sql_mode='STRICT_TRANS_TABLES'",
            },
        }
    }


# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
]

# Internationalization
LANGUAGE_CODE = "en-us"
TIME_ZONE = "Africa/Kampala"
USE_I18N = True
USE_TZ = True

# Static files (CSS, JavaScript, Images)
STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# WhiteNoise serves the admin assets
WHITENOISE_USE_FINDERS = DEBUG
WHITENOISE_AUTOREFRESH = DEBUG

# Security Settings - Environment Aware Configuration
if not DEBUG:
    SECURE_CONTENT_TYPE_NOSNIFF = True
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True
    X_FRAME_OPTIONS = "DENY"
else:
    SESSION_COOKIE_SECURE = False
    CSRF_COOKIE_SECURE = False
    X_FRAME_OPTIONS = "SAMEORIGIN"

# Logging
LOG_DIR = BASE_DIR / "logs"
if not DEBUG:
    LOG_DIR.mkdir(exist_ok=True)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
        "file": {
            "class": "logging.FileHandler",
            "filename": LOG_DIR / "fastnet.log",
            "formatter": "verbose",
            "delay": True,
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO" if DEBUG else "WARNING",
    },
    "loggers": {
        "django": {
            "handlers": ["console", "file"] if not DEBUG else ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "billing": {
            "handlers": ["console", "file"] if not DEBUG else ["console"],
            "level": "INFO",
            "propagate": False,
        },
    },
}

# Default primary key field type
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# REST Framework Configuration
REST_FRAMEWORK = {
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.AllowAny",
    ],
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
        "rest_framework.parsers.FormParser",
    ],
    "EXCEPTION_HANDLER": "billing.exception_handler.custom_exception_handler",
}

# CORS settings - Environment Aware
if DEBUG:
    CORS_ALLOW_ALL_ORIGINS = True
else:
    CORS_ALLOW_ALL_ORIGINS = False
    CORS_ALLOWED_ORIGINS = config(
        "CORS_ALLOWED_ORIGINS",
        default="http://localhost:3000,http://127.0.0.1:3000",
        cast=Csv(),
    )

CORS_ALLOW_HEADERS = [
    "accept",
    "authorization",
    "content-type",
    "origin",
    "user-agent",
    "x-csrftoken",
    "x-requested-with",
    "x-admin-access",  # Operator token header
]

# Demo mode swaps both adapters for simulated ones
DEMO_MODE = config("DEMO_MODE", default=False, cast=bool)

# Payment provider: flutterwave | pawapay | demo
PAYMENT_PROVIDER = config("PAYMENT_PROVIDER", default="flutterwave")
PAYMENT_CURRENCY = config("PAYMENT_CURRENCY", default="UGX")
PAYMENT_PROVIDER_TIMEOUT = config("PAYMENT_PROVIDER_TIMEOUT", default=15, cast=int)

# Flutterwave Configuration
FLW_SECRET_KEY = config("FLW_SECRET_KEY", default="")
FLW_WEBHOOK_SECRET = config("FLW_WEBHOOK_SECRET", default="")
FLW_BASE_URL = config("FLW_BASE_URL", default="https://api.flutterwave.com/v3")
FLW_CUSTOMER_EMAIL = config("FLW_CUSTOMER_EMAIL", default="customer@fastnet.ug")

# Pawapay Configuration
PAWAPAY_API_TOKEN = config("PAWAPAY_API_TOKEN", default="")
PAWAPAY_WEBHOOK_SECRET = config("PAWAPAY_WEBHOOK_SECRET", default="")
PAWAPAY_BASE_URL = config("PAWAPAY_BASE_URL", default="https://api.sandbox.pawapay.io")
PAWAPAY_SIGNATURE_HEADER = config("PAWAPAY_SIGNATURE_HEADER", default="Signature")

# MikroTik API Configuration (env-driven)
MIKROTIK_HOST = config("MIKROTIK_HOST", default="192.168.88.1")
MIKROTIK_PORT = config("MIKROTIK_PORT", default=8728, cast=int)
MIKROTIK_USER = config("MIKROTIK_USER", default="admin")
MIKROTIK_PASSWORD = config("MIKROTIK_PASSWORD", default="")
MIKROTIK_USE_SSL = config("MIKROTIK_USE_SSL", default=False, cast=bool)
# Control SSL certificate verification for self-signed certs (default: disabled)
MIKROTIK_SSL_VERIFY = config("MIKROTIK_SSL_VERIFY", default=False, cast=bool)
MIKROTIK_DEFAULT_PROFILE = config("MIKROTIK_DEFAULT_PROFILE", default="default")
MIKROTIK_TIMEOUT = config("MIKROTIK_TIMEOUT", default=10, cast=int)
MIKROTIK_RETRIES = config("MIKROTIK_RETRIES", default=2, cast=int)

# Hotspot credentials and vouchers
HOTSPOT_USERNAME_PREFIX = config("HOTSPOT_USERNAME_PREFIX", default="FASTNET")
VOUCHER_CODE_LENGTH = config("VOUCHER_CODE_LENGTH", default=8, cast=int)
VOUCHER_MAX_ATTEMPTS = config("VOUCHER_MAX_ATTEMPTS", default=10, cast=int)
VOUCHER_BATCH_LIMIT = config("VOUCHER_BATCH_LIMIT", default=50, cast=int)

# Operator token (for dashboard API access)
SIMPLE_ADMIN_TOKEN = config("SIMPLE_ADMIN_TOKEN", default="fastnet_admin_dev")

# Jazzmin Configuration
JAZZMIN_SETTINGS = {
    "site_title": "FASTNET Admin",
    "site_header": "FASTNET",
    "site_brand": "FASTNET Hotspot",
    "welcome_sign": "FASTNET Hotspot Billing",
    "copyright": "FASTNET WiFi",
    "search_model": [
        "billing.Payment",
        "billing.Voucher",
        "billing.Session",
    ],
    "show_sidebar": True,
    "navigation_expanded": True,
    "order_with_respect_to": ["billing", "auth"],
    "icons": {
        "auth": "fas fa-users-cog",
        "auth.user": "fas fa-user",
        "billing.Package": "fas fa-boxes",
        "billing.Payment": "fas fa-credit-card",
        "billing.Session": "fas fa-wifi",
        "billing.Voucher": "fas fa-ticket-alt",
        "billing.PaymentWebhook": "fas fa-plug",
    },
    "related_modal_active": False,
    "changeform_format": "horizontal_tabs",
}

# CRONTAB CONFIGURATION FOR SCHEDULED TASKS
# ============================================
# Run 'python manage.py crontab add' to install cron jobs
# Run 'python manage.py crontab show' to list active cron jobs

CRONJOBS = [
    # Deactivate expired sessions and remove their hotspot accounts
    (
        "*/5 * * * *",
        "billing.tasks.expire_sessions",
        ">> /var/log/fastnet_cron.log 2>&1",
    ),
    # Provision paid payments that never got a session
    (
        "0 * * * *",
        "billing.tasks.reconcile_payments",
        ">> /var/log/fastnet_cron.log 2>&1",
    ),
]
