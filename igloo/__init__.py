try:
    import dotenv
except ModuleNotFoundError:
    pass
else:
    if dotenv.find_dotenv(usecwd=True):
        print("Found .env file, loading environment variables from it.")  # noqa: T201
        dotenv.load_dotenv(dotenv.find_dotenv(usecwd=True), override=True)


import logging
import os

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

####################
# NOTE: only constants and log may be imported before the `log.setup()` call
####################
from igloo import constants, log


sentry_sdk.init(
    dsn=constants.Monitoring.sentry_dsn,
    integrations=[
        # breadcrumbs from TRACE up, events for warnings and above
        LoggingIntegration(level=log.TRACE, event_level=logging.WARNING),
        SqlalchemyIntegration(),
    ],
    release=f"igloo@{os.environ.get('GIT_SHA', 'dev')}",
)

log.setup()
