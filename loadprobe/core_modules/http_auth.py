"""Applies HTTP authentication credentials before the page is opened."""

__version__ = "1.0"


def module(api):
    user = api.get_param("auth_user", type_check=str)
    password = api.get_param("auth_pass", type_check=str)

    if not user:
        return

    def set_credentials(settings):
        settings.http_username = user
        settings.http_password = password or ""
        api.log("HTTP authentication set for user %s", user)

    api.on("pageBeforeOpen", set_credentials)
