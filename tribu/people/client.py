from tribu.people.api import PeopleAPI

_client = None


def get_people_client():
    '''
    Returns a singleton instance of the PeopleAPI class.
    '''
    global _client
    if _client is None:
        from flask import current_app
        from tribu.people.auth import get_access_token
        _client = PeopleAPI(get_access_token, timeout=current_app.config.get("PEOPLE_API_TIMEOUT", 30))
    return _client
