# Overview: Flask extension instances for the default tenant database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Tenant engines registered in TenantRegistry use the same pre-ping setting
db = SQLAlchemy(engine_options={"pool_pre_ping": True})
migrate = Migrate()
