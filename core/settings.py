from environs import Env
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

env = Env()
env.read_env(BASE_DIR / '.env')

APP_ENV = env.str('APP_ENV', 'local')

SECRET_KEY = env.str('APP_SECRET_KEY', 'change-me')

DEBUG = APP_ENV != 'production'

ALLOWED_HOSTS = env.list('ALLOWED_HOSTS', default=['*'])

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'videogate',
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

ROOT_URLCONF = 'core.urls'

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

WSGI_APPLICATION = 'core.wsgi.application'
ASGI_APPLICATION = 'core.asgi.application'


# Local development and test runs use sqlite unless told otherwise.
DATABASE_ENGINE = env.str(
    'DATABASE_ENGINE',
    'django.db.backends.sqlite3' if APP_ENV in ('local', 'test')
    else 'django.db.backends.postgresql_psycopg2',
)

if DATABASE_ENGINE == 'django.db.backends.sqlite3':
    DATABASES = {
        'default': {
            'ENGINE': DATABASE_ENGINE,
            'NAME': env.str('SQLITE_PATH', str(BASE_DIR / 'db.sqlite3')),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': DATABASE_ENGINE,
            'NAME': env.str(
                'PGSQL_DATABASE_VIDEOGATE',
                env.str('PGSQL_DATABASE', 'videogate'),
            ),
            'USER': env.str('PGSQL_USER', 'postgres'),
            'PASSWORD': env.str('PGSQL_PASSWORD', 'mysecretpassword'),
            'HOST': env.str('PGSQL_HOST', 'localhost'),
            'PORT': env.int('PGSQL_PORT', 5432),
        }
    }


AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]


LANGUAGE_CODE = 'en-us'

TIME_ZONE = 'UTC'

USE_I18N = True

USE_TZ = True


STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'static'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

REST_FRAMEWORK = {
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
}

# Authorization ledger (VideoAccessControl contract on Chiliz by default)
LEDGER_PROVIDER = env.str('LEDGER_PROVIDER', 'chiliz')
LEDGER_RPC_URL = env.str('LEDGER_RPC_URL', 'https://spicy-rpc.chiliz.com')
LEDGER_CHAIN_ID = env.int('LEDGER_CHAIN_ID', 88882)
LEDGER_CONTRACT_ADDRESS = env.str('LEDGER_CONTRACT_ADDRESS', '')
LEDGER_SIGNER_PRIVATE_KEY = env.str('LEDGER_SIGNER_PRIVATE_KEY', '')
LEDGER_GAS_LIMIT = env.int('LEDGER_GAS_LIMIT', 200000)
LEDGER_TX_TIMEOUT_SECONDS = env.int('LEDGER_TX_TIMEOUT_SECONDS', 60)
LEDGER_RPC_TIMEOUT_SECONDS = env.int('LEDGER_RPC_TIMEOUT_SECONDS', 10)

# Payment provider
PAYMENT_PROVIDER = env.str('PAYMENT_PROVIDER', 'mock')
PAYMENT_REALM = env.str('PAYMENT_REALM', 'VideoGate')
PAYMENT_CURRENCY = env.str('PAYMENT_CURRENCY', 'USD')
PAYMENT_VERIFY_URL = env.str('PAYMENT_VERIFY_URL', '')
PAYMENT_API_KEY = env.str('PAYMENT_API_KEY', '')
PAYMENT_VERIFY_TIMEOUT_SECONDS = env.int('PAYMENT_VERIFY_TIMEOUT_SECONDS', 10)
PAYMENT_WEBHOOK_SECRET = env.str('PAYMENT_WEBHOOK_SECRET', '')
PAYMENT_WEBHOOK_REQUIRE_SIGNATURE = env.bool(
    'PAYMENT_WEBHOOK_REQUIRE_SIGNATURE', APP_ENV == 'production')
PAYMENT_UNDERPAYMENT_POLICY = env.str('PAYMENT_UNDERPAYMENT_POLICY', 'allow')

# Storage / streaming collaborator
STORAGE_PROVIDER = env.str('STORAGE_PROVIDER', 'mock')
STORAGE_BASE_URL = env.str('STORAGE_BASE_URL', '')
STORAGE_URL_TTL_SECONDS = env.int('STORAGE_URL_TTL_SECONDS', 300)
