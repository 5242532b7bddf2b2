# sntp.py - 48-byte SNTP (RFC 2030) packet codec, timestamps, offset/rtt math
import enum, socket, struct
from collections import namedtuple
from datetime import datetime, timedelta

NTP_PORT=123; PKT_SIZE=48; POLL_MS=500
EPOCH=datetime(1900,1,1)   # NTP era 0
REQ_BYTE=0x1B              # LI=0 VN=3 Mode=3, sent as-is by every request
NA="N/A"

# byte offsets into the packet
OFF_REF_ID=12; OFF_REF_TS=16; OFF_ORIG_TS=24; OFF_RECV_TS=32; OFF_TX_TS=40

ONE_MS=timedelta(milliseconds=1)


class SntpError(Exception):
    """Base error for a failed exchange."""

class ConnectError(SntpError):
    """Host name could not be resolved."""

class InvalidResponse(SntpError):
    """Reply too short or not sent by a server."""

class SntpTimeout(SntpError, TimeoutError):
    """No reply within the time budget."""


class LeapIndicator(enum.IntEnum):
    NO_WARNING=0; LAST_MINUTE_61=1; LAST_MINUTE_59=2; ALARM=3

class Mode(enum.IntEnum):
    UNKNOWN=0; SYMMETRIC_ACTIVE=1; SYMMETRIC_PASSIVE=2; CLIENT=3; SERVER=4; BROADCAST=5

class Stratum(enum.Enum):
    UNSPECIFIED="unspecified"; PRIMARY_REFERENCE="primary"
    SECONDARY_REFERENCE="secondary"; RESERVED="reserved"


class Header(namedtuple("Header","leap version mode")):
    """First packet byte: LI (2 bits) | VN (3 bits) | Mode (3 bits)."""
    __slots__=()

    @classmethod
    def from_byte(cls,b):
        return cls((b>>6)&0x03,(b>>3)&0x07,b&0x07)

    def to_byte(self):
        return ((self.leap&0x03)<<6)|((self.version&0x07)<<3)|(self.mode&0x07)


def now():        return datetime.now()
def utc_offset(): return datetime.now().astimezone().utcoffset()
def signed(b):    return b-256 if b>127 else b

def init_request(buf=None,date=None):
    """Zero the buffer and fill in a client request stamped with local time."""
    if buf is None: buf=bytearray(PKT_SIZE)
    buf[:PKT_SIZE]=bytes(PKT_SIZE)
    buf[0]=REQ_BYTE
    set_date(buf,OFF_TX_TS,date or now())
    return buf

def leap(buf):     return LeapIndicator(Header.from_byte(buf[0]).leap)
def version(buf):  return Header.from_byte(buf[0]).version

def mode(buf):
    m=Header.from_byte(buf[0]).mode
    return Mode(m) if 1<=m<=5 else Mode.UNKNOWN

def stratum(buf):
    s=buf[1]
    if s==0:   return Stratum.UNSPECIFIED
    if s==1:   return Stratum.PRIMARY_REFERENCE
    if s<=15:  return Stratum.SECONDARY_REFERENCE
    return Stratum.RESERVED

def poll_interval(buf): return 2**signed(buf[2])       # seconds; <1 for negative exponents
def precision(buf):     return 2.0**signed(buf[3])     # seconds

def _short(buf,off): return struct.unpack_from("!I",buf,off)[0]/0x10000*1000
def root_delay(buf):      return _short(buf,4)
def root_dispersion(buf): return _short(buf,8)

def ref_addr(buf):
    return ".".join(str(b) for b in buf[OFF_REF_ID:OFF_REF_ID+4])

def reverse_lookup(ip): return socket.gethostbyaddr(ip)[0]

def ref_id(buf,resolver=reverse_lookup):
    """Reference identifier as text; meaning depends on stratum and version.

    Stratum 0/1 carry a 4-char code (e.g. "GPS", "LOCL"). Secondary servers
    send their upstream's IPv4 address under v3 and the low bits of its
    transmit timestamp under v4.
    """
    s=stratum(buf)
    if s in (Stratum.UNSPECIFIED,Stratum.PRIMARY_REFERENCE):
        return "".join(chr(b) for b in buf[OFF_REF_ID:OFF_REF_ID+4])
    if s!=Stratum.SECONDARY_REFERENCE: return NA
    v=version(buf)
    if v==3:
        ip=ref_addr(buf)
        try: return f"{resolver(ip)} ({ip})"
        except OSError: return NA
    if v==4:
        return str(ms_to_date(get_ms(buf,OFF_REF_ID))+utc_offset())
    return NA

def get_ms(buf,off):
    """Milliseconds since 1900 held in the 32.32 timestamp at off (truncated)."""
    intpart,fracpart=struct.unpack_from("!II",buf,off)
    return intpart*1000+(fracpart*1000)//0x100000000

def ms_to_date(ms): return EPOCH+timedelta(milliseconds=ms)

def set_date(buf,off,date):
    ms=((date-EPOCH)//ONE_MS)&0xFFFFFFFFFFFFFFFF
    intpart=(ms//1000)&0xFFFFFFFF       # wraps at the era boundary (2036)
    fracpart=((ms%1000)*0x100000000+999)//1000   # round up so get_ms reads back the same ms
    struct.pack_into("!II",buf,off,intpart,fracpart)

def is_valid(buf): return len(buf)>=PKT_SIZE and mode(buf)==Mode.SERVER


def _ms(d): return d/ONE_MS if isinstance(d,timedelta) else float(d)

def rtt(t1,t2,t3,t4):    return _ms((t4-t1)-(t3-t2))     # δ = (T4-T1)-(T3-T2)
def offset(t1,t2,t3,t4): return _ms((t2-t1)+(t3-t4))/2   # θ = ((T2-T1)+(T3-T4))/2


class Pkt:
    """One exchange: the packet buffer (request, then reply) plus T4."""

    def __init__(self):
        self.buf=bytearray(PKT_SIZE); self.t4=None

    def init(self,date=None):
        init_request(self.buf,date); self.t4=None
        return self

    @property
    def leap(self):            return leap(self.buf)
    @property
    def version(self):         return version(self.buf)
    @property
    def mode(self):            return mode(self.buf)
    @property
    def stratum(self):         return stratum(self.buf)
    @property
    def poll_interval(self):   return poll_interval(self.buf)
    @property
    def precision(self):       return precision(self.buf)
    @property
    def root_delay(self):      return root_delay(self.buf)
    @property
    def root_dispersion(self): return root_dispersion(self.buf)

    def ref_id(self,resolver=reverse_lookup): return ref_id(self.buf,resolver)

    # server times are UTC; shift to local to compare with T4
    def _local(self,off): return ms_to_date(get_ms(self.buf,off))+utc_offset()

    @property
    def t_ref(self): return self._local(OFF_REF_TS)
    @property
    def t1(self):    return ms_to_date(get_ms(self.buf,OFF_ORIG_TS))   # our own local clock, echoed back
    @property
    def t2(self):    return self._local(OFF_RECV_TS)
    @property
    def t3(self):    return self._local(OFF_TX_TS)

    @t3.setter
    def t3(self,date): set_date(self.buf,OFF_TX_TS,date)

    def is_valid(self): return is_valid(self.buf)
    def rtt(self):      return rtt(self.t1,self.t2,self.t3,self.t4)
    def offset(self):   return offset(self.t1,self.t2,self.t3,self.t4)
