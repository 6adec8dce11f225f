"""
Gateway tables, mirrored from the upstream API gateway's schema.
The monitor never creates these in production; it only reads them
(and the circuit breaker updates ``channels.status``).
"""

from sqlalchemy import Column, String, Text, Integer, BigInteger, Float, Boolean
from ..database import SourceBase

# Log types
LOG_TYPE_CONSUME = 2  # successful request
LOG_TYPE_ERROR = 5    # failed request

# Channel status codes
CHANNEL_STATUS_ENABLED = 1
CHANNEL_STATUS_MANUALLY_DISABLED = 2
CHANNEL_STATUS_AUTO_DISABLED = 3

TOKEN_STATUS_ENABLED = 1


class Log(SourceBase):
    """One request record written by the gateway. Immutable once written."""
    __tablename__ = "logs"

    id = Column(BigInteger, primary_key=True)
    created_at = Column(BigInteger, index=True)
    type = Column(Integer, index=True)
    content = Column(Text)
    token_id = Column(Integer)
    channel_id = Column(Integer, index=True)
    model_name = Column(String(255), default="")
    prompt_tokens = Column(Integer, default=0)
    completion_tokens = Column(Integer, default=0)
    quota = Column(Integer, default=0)
    use_time = Column(Integer, default=0)
    other = Column(Text)

    def __repr__(self) -> str:
        return f"<Log {self.id} type={self.type}>"


class Channel(SourceBase):
    """An upstream provider route configured in the gateway."""
    __tablename__ = "channels"

    id = Column(Integer, primary_key=True)
    type = Column(Integer, default=0)
    name = Column(String(255))
    status = Column(Integer, default=CHANNEL_STATUS_ENABLED)
    response_time = Column(Integer)
    test_time = Column(BigInteger)
    balance = Column(Float)
    used_quota = Column(BigInteger, default=0)

    def __repr__(self) -> str:
        return f"<Channel {self.id}: {self.name}>"


class Token(SourceBase):
    """A gateway API credential with a remaining quota balance."""
    __tablename__ = "tokens"

    id = Column(Integer, primary_key=True)
    name = Column(String(255))
    status = Column(Integer, default=TOKEN_STATUS_ENABLED)
    remain_quota = Column(BigInteger, default=0)
    used_quota = Column(BigInteger, default=0)
    unlimited_quota = Column(Boolean, default=False)
    expired_time = Column(BigInteger, default=-1)
    accessed_time = Column(BigInteger)
    group = Column(String(64), default="")
    used_count = Column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<Token {self.id}: {self.name}>"
