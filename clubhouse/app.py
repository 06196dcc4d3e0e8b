# module clubhouse.app
from clubhouse.app_setup.factory import create_app

# App globale
app = create_app()
