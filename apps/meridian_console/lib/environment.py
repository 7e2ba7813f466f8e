"""Active-environment selection, kept in st.session_state."""

import streamlit as st
from lib.db import safe_query

from meridian.core.db import list_environments, resolve_environment
from meridian.core.models import Environment, ProviderEnum
from meridian.resilience import MeridianError, NotFoundError

_KEY = "active_environment_id"


def _env_dict(env: Environment) -> dict:
    return {
        "id": str(env.id),
        "name": env.name,
        "description": env.description,
        "provider": env.provider.value,
        "currency": env.currency,
        "is_active": env.is_active,
    }


def get_environments(include_inactive: bool = False) -> list[dict]:
    return safe_query(lambda s: [_env_dict(e) for e in list_environments(s, include_inactive=include_inactive)])


def get_active_environment() -> str | None:
    """The selected environment id, defaulting to the first active one."""
    env_id = st.session_state.get(_KEY)
    if env_id:
        return env_id
    envs = get_environments()
    if envs:
        st.session_state[_KEY] = envs[0]["id"]
        return envs[0]["id"]
    return None


def get_active_environment_details() -> dict | None:
    env_id = get_active_environment()
    if not env_id:
        return None
    try:
        return safe_query(lambda s: _env_dict(resolve_environment(s, env_id)))
    except NotFoundError:
        st.session_state.pop(_KEY, None)
        return None


def switch_environment(env_id: str) -> bool:
    st.session_state[_KEY] = env_id
    return True


def require_environment() -> dict:
    """Details of the active environment; stops the page when there is none."""
    env = get_active_environment_details()
    if not env:
        st.error("No environment selected. Create one on the Environments page or run `meridian seed`.")
        st.stop()
    return env


def create_environment(name: str, description: str, provider: str, currency: str):
    """Returns (id, None) on success, (None, error message) otherwise."""

    def _create(session):
        if session.query(Environment).filter(Environment.name == name).first():
            raise MeridianError(f"Environment '{name}' already exists")
        env = Environment(
            name=name,
            description=description or None,
            provider=ProviderEnum(provider),
            currency=currency.upper(),
            is_active=True,
        )
        session.add(env)
        session.flush()
        return str(env.id)

    try:
        return safe_query(_create), None
    except MeridianError as e:
        return None, str(e)


def set_environment_active(env_id: str, active: bool) -> None:
    def _update(session):
        resolve_environment(session, env_id).is_active = active

    safe_query(_update)
