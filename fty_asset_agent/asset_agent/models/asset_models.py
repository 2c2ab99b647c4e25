# asset_agent/models/asset_models.py
"""
Asset registry models matching the alembic migrations in fty_asset_db_migration.
Table and column names are the historical t_bios_* ones.
"""
from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from asset_agent.db.base import Base


# -------------------------------------------------------
# ASSET ELEMENT TYPE / DEVICE TYPE (lookup tables)
# Migrations: 001_create_t_bios_asset_element_type, 002_create_t_bios_asset_device_type
# -------------------------------------------------------
class AssetElementType(Base):
    __tablename__ = "t_bios_asset_element_type"

    id = Column("id_asset_element_type", SmallInteger, primary_key=True, autoincrement=False)
    name = Column(String(50), nullable=False, unique=True)


class AssetDeviceType(Base):
    __tablename__ = "t_bios_asset_device_type"

    id = Column("id_asset_device_type", SmallInteger, primary_key=True, autoincrement=False)
    name = Column(String(50), nullable=False, unique=True)


# -------------------------------------------------------
# ASSET ELEMENT
# Migration: 003_create_t_bios_asset_element
# -------------------------------------------------------
class AssetElement(Base):
    __tablename__ = "t_bios_asset_element"

    id = Column("id_asset_element", Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True, index=True)
    id_type = Column(
        SmallInteger,
        ForeignKey("t_bios_asset_element_type.id_asset_element_type"),
        nullable=False,
    )
    id_subtype = Column(
        SmallInteger,
        ForeignKey("t_bios_asset_device_type.id_asset_device_type"),
        nullable=False,
        default=11,
    )
    id_parent = Column(
        Integer,
        ForeignKey("t_bios_asset_element.id_asset_element"),
        nullable=True,
        index=True,
    )
    status = Column(String(9), nullable=False, default="nonactive")
    priority = Column(SmallInteger, nullable=False, default=5)
    asset_tag = Column(String(50), nullable=True)

    # Relationships
    parent = relationship("AssetElement", remote_side=[id], back_populates="children")
    children = relationship("AssetElement", back_populates="parent")
    ext_attributes = relationship(
        "ExtAttribute",
        back_populates="asset",
        cascade="all, delete-orphan",
    )
    links_out = relationship(
        "AssetLink",
        foreign_keys="AssetLink.id_asset_device_src",
        back_populates="source",
        cascade="all, delete-orphan",
    )
    links_in = relationship(
        "AssetLink",
        foreign_keys="AssetLink.id_asset_device_dest",
        back_populates="destination",
        cascade="all, delete-orphan",
    )
    group_memberships = relationship(
        "AssetGroupRelation",
        foreign_keys="AssetGroupRelation.id_asset_element",
        back_populates="element",
        cascade="all, delete-orphan",
    )


# -------------------------------------------------------
# EXT ATTRIBUTES
# Migration: 004_create_t_bios_asset_ext_attributes
# -------------------------------------------------------
class ExtAttribute(Base):
    __tablename__ = "t_bios_asset_ext_attributes"
    __table_args__ = (
        UniqueConstraint("keytag", "id_asset_element", name="uq_asset_ext_attributes_keytag"),
    )

    id = Column("id_asset_ext_attribute", Integer, primary_key=True, autoincrement=True)
    keytag = Column(String(40), nullable=False)
    value = Column(String(255), nullable=False)
    id_asset_element = Column(
        Integer,
        ForeignKey("t_bios_asset_element.id_asset_element", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    read_only = Column(Boolean, nullable=False, default=False)

    asset = relationship("AssetElement", back_populates="ext_attributes")


# -------------------------------------------------------
# LINK TYPE / LINK
# Migrations: 005_create_t_bios_asset_link_type, 006_create_t_bios_asset_link
# -------------------------------------------------------
class AssetLinkType(Base):
    __tablename__ = "t_bios_asset_link_type"

    id = Column("id_asset_link_type", SmallInteger, primary_key=True, autoincrement=False)
    name = Column(String(50), nullable=False, unique=True)


class AssetLink(Base):
    __tablename__ = "t_bios_asset_link"
    __table_args__ = (
        UniqueConstraint(
            "id_asset_device_src",
            "src_out",
            "id_asset_device_dest",
            "dest_in",
            name="uq_asset_link",
        ),
    )

    id = Column("id_link", Integer, primary_key=True, autoincrement=True)
    id_asset_device_src = Column(
        Integer,
        ForeignKey("t_bios_asset_element.id_asset_element"),
        nullable=False,
        index=True,
    )
    src_out = Column(String(16), nullable=True)
    id_asset_device_dest = Column(
        Integer,
        ForeignKey("t_bios_asset_element.id_asset_element"),
        nullable=False,
        index=True,
    )
    dest_in = Column(String(16), nullable=True)
    id_asset_link_type = Column(
        SmallInteger,
        ForeignKey("t_bios_asset_link_type.id_asset_link_type"),
        nullable=False,
        default=1,
    )

    source = relationship(
        "AssetElement", foreign_keys=[id_asset_device_src], back_populates="links_out"
    )
    destination = relationship(
        "AssetElement", foreign_keys=[id_asset_device_dest], back_populates="links_in"
    )


# -------------------------------------------------------
# GROUP RELATION
# Migration: 007_create_t_bios_asset_group_relation
# -------------------------------------------------------
class AssetGroupRelation(Base):
    __tablename__ = "t_bios_asset_group_relation"
    __table_args__ = (
        UniqueConstraint("id_asset_group", "id_asset_element", name="uq_asset_group_relation"),
    )

    id = Column("id_asset_group_relation", Integer, primary_key=True, autoincrement=True)
    id_asset_group = Column(
        Integer,
        ForeignKey("t_bios_asset_element.id_asset_element"),
        nullable=False,
        index=True,
    )
    id_asset_element = Column(
        Integer,
        ForeignKey("t_bios_asset_element.id_asset_element"),
        nullable=False,
        index=True,
    )

    group = relationship("AssetElement", foreign_keys=[id_asset_group])
    element = relationship(
        "AssetElement", foreign_keys=[id_asset_element], back_populates="group_memberships"
    )
