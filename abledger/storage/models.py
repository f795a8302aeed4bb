"""
SQLAlchemy Models for ABLedger Storage.

This module defines the database schema of the differential-testing store:
environments, the blocks each environment recorded, the trie leaf entries
written by each block, and the contract data (source, executions, variables
and maps) captured while replaying.

Binary fields are stored as raw bytes. Every foreign key cascades on delete so
that dropping an environment removes everything it owns.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    LargeBinary,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class RuntimeModel(Base):
    """
    Closed enumeration of runtimes, seeded once by the backend.
    """
    __tablename__ = 'runtime'

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String, nullable=False)

    def __repr__(self):
        return f"<Runtime(id={self.id}, name='{self.name}')>"


class EnvironmentModel(Base):
    """
    One independent replay of the chain under one runtime.
    """
    __tablename__ = 'environment'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    runtime_id = Column(Integer, ForeignKey('runtime.id'), nullable=False)
    path = Column(String, nullable=False)

    # Height watermark, advanced together with each recorded block
    max_height = Column(Integer, nullable=True)

    runtime = relationship("RuntimeModel")
    blocks = relationship("BlockModel", back_populates="environment", passive_deletes=True)

    def __repr__(self):
        return f"<Environment(id={self.id}, name='{self.name}', runtime={self.runtime_id})>"


class BlockModel(Base):
    """
    A block recorded by an environment and the trie root it produced.
    """
    __tablename__ = 'block'
    __table_args__ = (
        UniqueConstraint('environment_id', 'height', name='uq_block_environment_height'),
        UniqueConstraint('environment_id', 'index_hash', name='uq_block_environment_index_hash'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    environment_id = Column(Integer, ForeignKey('environment.id', ondelete='CASCADE'), nullable=False)
    height = Column(Integer, nullable=False)
    index_hash = Column(LargeBinary, nullable=False)
    marf_trie_root_hash = Column(LargeBinary, nullable=False)

    environment = relationship("EnvironmentModel", back_populates="blocks")
    entries = relationship("MarfEntryModel", back_populates="block", passive_deletes=True)

    def __repr__(self):
        return f"<Block(environment={self.environment_id}, height={self.height}, hash='{self.index_hash.hex()[:8]}...')>"


class MarfEntryModel(Base):
    """
    One trie leaf (key hash -> value) written when producing a block.
    """
    __tablename__ = 'marf_entry'
    __table_args__ = (
        UniqueConstraint('block_id', 'key_hash', name='uq_marf_entry_block_key'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    block_id = Column(Integer, ForeignKey('block.id', ondelete='CASCADE'), nullable=False)
    key_hash = Column(LargeBinary, nullable=False)
    value = Column(LargeBinary, nullable=False)

    block = relationship("BlockModel", back_populates="entries")

    def __repr__(self):
        return f"<MarfEntry(block={self.block_id}, key='{self.key_hash.hex()[:8]}...')>"


class ContractModel(Base):
    """
    Contract source deployed in a block. Identifiers are unique per environment.
    """
    __tablename__ = 'contract'
    __table_args__ = (
        UniqueConstraint('environment_id', 'qualified_contract_id', name='uq_contract_environment_qualified_id'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    environment_id = Column(Integer, ForeignKey('environment.id', ondelete='CASCADE'), nullable=False)
    block_id = Column(Integer, ForeignKey('block.id', ondelete='CASCADE'), nullable=False)
    qualified_contract_id = Column(String, nullable=False)
    source = Column(LargeBinary, nullable=False)

    def __repr__(self):
        return f"<Contract(environment={self.environment_id}, id='{self.qualified_contract_id}')>"


class ContractExecutionModel(Base):
    """
    A transaction that invoked a contract at a block.
    """
    __tablename__ = 'contract_execution'
    __table_args__ = (
        UniqueConstraint('block_id', 'contract_id', 'transaction_id', name='uq_contract_execution_tx'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    block_id = Column(Integer, ForeignKey('block.id', ondelete='CASCADE'), nullable=False, index=True)
    contract_id = Column(Integer, ForeignKey('contract.id', ondelete='CASCADE'), nullable=False)
    transaction_id = Column(LargeBinary, nullable=False)


class ContractVarModel(Base):
    """
    A named persistent variable of a contract.
    """
    __tablename__ = 'contract_var'
    __table_args__ = (
        UniqueConstraint('contract_id', 'key', name='uq_contract_var_key'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    contract_id = Column(Integer, ForeignKey('contract.id', ondelete='CASCADE'), nullable=False)
    key = Column(String, nullable=False)


class ContractVarInstanceModel(Base):
    """
    Value snapshot of a contract variable, tagged with the block and execution
    that produced it.
    """
    __tablename__ = 'contract_var_instance'
    __table_args__ = (
        Index('ix_contract_var_instance_height', 'contract_var_id', 'block_height', 'id'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    contract_var_id = Column(Integer, ForeignKey('contract_var.id', ondelete='CASCADE'), nullable=False)
    block_id = Column(Integer, ForeignKey('block.id', ondelete='CASCADE'), nullable=False, index=True)
    # Copy of block.height for point-in-time lookups without a join
    block_height = Column(Integer, nullable=False)
    contract_execution_id = Column(
        Integer, ForeignKey('contract_execution.id', ondelete='CASCADE'), nullable=False
    )
    value = Column(LargeBinary, nullable=False)


class ContractMapModel(Base):
    """
    A named map-typed data structure of a contract.
    """
    __tablename__ = 'contract_map'
    __table_args__ = (
        UniqueConstraint('contract_id', 'name', name='uq_contract_map_name'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    contract_id = Column(Integer, ForeignKey('contract.id', ondelete='CASCADE'), nullable=False)
    name = Column(String, nullable=False)


class ContractMapEntryModel(Base):
    """
    Value of one map key as of a block.
    """
    __tablename__ = 'contract_map_entry'
    __table_args__ = (
        UniqueConstraint('contract_map_id', 'block_id', 'key_hash', name='uq_contract_map_entry_block_key'),
        Index('ix_contract_map_entry_height', 'contract_map_id', 'key_hash', 'block_height'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    contract_map_id = Column(Integer, ForeignKey('contract_map.id', ondelete='CASCADE'), nullable=False)
    block_id = Column(Integer, ForeignKey('block.id', ondelete='CASCADE'), nullable=False, index=True)
    block_height = Column(Integer, nullable=False)
    key_hash = Column(LargeBinary, nullable=False)
    value = Column(LargeBinary, nullable=False)
