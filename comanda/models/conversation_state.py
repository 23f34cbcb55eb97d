import sqlalchemy as sa
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB

from comanda.core.database import Base


class ConversationState(Base):
    __tablename__ = "conversation_states"
    __table_args__ = (UniqueConstraint("restaurant_id", "user_phone", name="uq_conversation_states_pair"),)

    id = Column(Integer, primary_key=True)

    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), index=True, nullable=False)
    user_phone = Column(String(30), index=True, nullable=False)

    state = Column(String(30), default="idle", nullable=False)
    cart_id = Column(Integer, ForeignKey("carts.id"), nullable=True)

    # memória curta do que foi mostrado por último ("o segundo")
    last_shown_products = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    # dados coletados pelo FSM (morada, pagamento...)
    state_metadata = Column("metadata", JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=dict)

    # concorrência otimista entre instâncias
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}
