from typing import Dict, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from asset_agent.core.config import reset_settings
from asset_agent.db.base import Base
from asset_agent.helpers.asset_types import LINK_TYPE_NAMES, SUBTYPE_IDS, SUBTYPE_N_A, TYPE_IDS
from asset_agent.models.asset_models import (
    AssetDeviceType,
    AssetElement,
    AssetElementType,
    AssetGroupRelation,
    AssetLink,
    AssetLinkType,
    ExtAttribute,
)


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """
    Settings for every test: no activation oracle and no licensing query on
    start, so nothing waits on agents that are not running.
    """
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("ACTIVATION_ENABLED", "false")
    monkeypatch.setenv("LICENSING_QUERY_ON_START", "false")
    monkeypatch.setenv("MAILBOX_TIMEOUT_SECONDS", "2")
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    db = factory()
    db.add_all(AssetElementType(id=type_id, name=name) for name, type_id in TYPE_IDS.items())
    db.add_all(AssetDeviceType(id=subtype_id, name=name) for name, subtype_id in SUBTYPE_IDS.items())
    db.add_all(AssetLinkType(id=link_id, name=name) for link_id, name in LINK_TYPE_NAMES.items())
    db.commit()
    db.close()
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# -------------------------------------------------------
# Seeding helpers
# -------------------------------------------------------
def add_asset(
    db,
    name: str,
    asset_type: str,
    subtype: Optional[str] = None,
    parent: Optional[AssetElement] = None,
    status: str = "active",
    ext: Optional[Dict[str, str]] = None,
    read_only: bool = False,
) -> AssetElement:
    """Stores one asset with its ext-attributes and commits."""
    element = AssetElement(
        name=name,
        id_type=TYPE_IDS[asset_type],
        id_subtype=SUBTYPE_IDS[subtype] if subtype else SUBTYPE_N_A,
        id_parent=parent.id if parent is not None else None,
        status=status,
        priority=5,
    )
    db.add(element)
    db.flush()
    for keytag, value in (ext or {}).items():
        db.add(ExtAttribute(id_asset_element=element.id, keytag=keytag, value=value, read_only=read_only))
    db.commit()
    return element


def add_link(db, src: AssetElement, dest: AssetElement, src_out: Optional[str] = None, dest_in: Optional[str] = None) -> AssetLink:
    link = AssetLink(
        id_asset_device_src=src.id,
        id_asset_device_dest=dest.id,
        src_out=src_out,
        dest_in=dest_in,
        id_asset_link_type=1,
    )
    db.add(link)
    db.commit()
    return link


def add_to_group(db, group: AssetElement, member: AssetElement) -> None:
    db.add(AssetGroupRelation(id_asset_group=group.id, id_asset_element=member.id))
    db.commit()


@pytest.fixture
def seeded(db):
    """
    A small installation:

        datacenter (Data Center)
          room-1 (Room 1)
            rack-1 (Rack 1, 42U)
              ups-1 (UPS 1)   -> epdu-1 (ePDU 1) -> server-1 (Server 1)
        group-1 (Group 1) with ups-1 and epdu-1
    """
    dc = add_asset(db, "datacenter", "datacenter", ext={"name": "Data Center"})
    room = add_asset(db, "room-1", "room", parent=dc, ext={"name": "Room 1"})
    rack = add_asset(db, "rack-1", "rack", parent=room, ext={"name": "Rack 1", "u_size": "42"})
    ups = add_asset(
        db,
        "ups-1",
        "device",
        "ups",
        parent=rack,
        ext={"name": "UPS 1", "u_size": "2", "location_u_pos": "1"},
    )
    epdu = add_asset(db, "epdu-1", "device", "epdu", parent=rack, ext={"name": "ePDU 1"})
    server = add_asset(
        db,
        "server-1",
        "device",
        "server",
        parent=rack,
        ext={"name": "Server 1", "u_size": "1", "location_u_pos": "10"},
    )
    add_link(db, ups, epdu, src_out="1")
    add_link(db, epdu, server, src_out="5", dest_in="A")
    group = add_asset(db, "group-1", "group", ext={"name": "Group 1"})
    add_to_group(db, group, ups)
    add_to_group(db, group, epdu)
    return {
        "dc": dc,
        "room": room,
        "rack": rack,
        "ups": ups,
        "epdu": epdu,
        "server": server,
        "group": group,
    }
