from playlog.api.app import create_app
