# sntpclient.py - single-shot SNTP exchange over UDP, text report, CLI
import argparse, logging, select, socket, sys, time
from datetime import timedelta
from sntp import (Pkt,PKT_SIZE,NTP_PORT,POLL_MS,LeapIndicator,Mode,Stratum,
                  SntpError,ConnectError,InvalidResponse,SntpTimeout,is_valid,now,reverse_lookup)

DEFAULT_HOST="0.pool.ntp.org"; DEFAULT_TIMEOUT=5000   # ms

log=logging.getLogger("sntp")

LEAP_TEXT={LeapIndicator.NO_WARNING:"No warning",
           LeapIndicator.LAST_MINUTE_61:"Last minute has 61 seconds",
           LeapIndicator.LAST_MINUTE_59:"Last minute has 59 seconds",
           LeapIndicator.ALARM:"Alarm Condition (clock not synchronized)"}
MODE_TEXT={Mode.UNKNOWN:"Unknown",Mode.SYMMETRIC_ACTIVE:"Symmetric Active",
           Mode.SYMMETRIC_PASSIVE:"Symmetric Passive",Mode.CLIENT:"Client",
           Mode.SERVER:"Server",Mode.BROADCAST:"Broadcast"}
STRATUM_TEXT={Stratum.UNSPECIFIED:"Unspecified",Stratum.RESERVED:"Unspecified",
              Stratum.PRIMARY_REFERENCE:"Primary reference",
              Stratum.SECONDARY_REFERENCE:"Secondary reference"}

def resolve(host):
    try: return socket.gethostbyname(host)
    except (OSError,UnicodeError) as e: raise ConnectError(f"cannot resolve {host}: {e}") from e

def exchange(host,timeout_ms=DEFAULT_TIMEOUT,port=NTP_PORT,pkt=None,poll_ms=POLL_MS):
    """Query host once and return the Pkt holding the reply and T4.

    The request is resent on every poll until a reply shows up or timeout_ms
    runs out; the first datagram read decides the outcome.
    """
    addr=(resolve(host),port)
    pkt=pkt or Pkt()
    sock=None
    try:
        sock=socket.socket(socket.AF_INET,socket.SOCK_DGRAM)
        pkt.init()
        elapsed=0; got=False
        while elapsed<timeout_ms:
            sock.sendto(pkt.buf,addr)
            log.debug("sent %d bytes to %s:%d",PKT_SIZE,*addr)
            ready,_,_=select.select([sock],[],[],0)
            if ready:
                n,_=sock.recvfrom_into(pkt.buf)
                log.debug("received %d bytes",n)
                if not is_valid(pkt.buf[:n]):
                    log.warning("invalid reply from %s (%d bytes, mode %s)",addr[0],n,pkt.mode.name)
                    raise InvalidResponse("Host sent an invalid response.")
                got=True; break
            time.sleep(poll_ms/1000); elapsed+=poll_ms
        if not got:
            log.debug("no reply after %d ms",elapsed)
            raise SntpTimeout("Host did not respond.")
    except OSError as e:
        if isinstance(e,SntpError): raise
        raise SntpError(str(e)) from e
    finally:
        if sock is not None: sock.close()
    pkt.t4=now()
    return pkt

def report(pkt,resolver=reverse_lookup):
    off=pkt.offset()
    return "\n".join([
        f"Leap indicator     : {LEAP_TEXT[pkt.leap]}",
        f"Version number     : {pkt.version}",
        f"Mode               : {MODE_TEXT[pkt.mode]}",
        f"Stratum            : {STRATUM_TEXT[pkt.stratum]}",
        f"Precision          : {pkt.precision} s.",
        f"Poll interval      : {pkt.poll_interval} s.",
        f"Reference ID       : {pkt.ref_id(resolver)}",
        f"Root delay         : {pkt.root_delay} ms.",
        f"Root dispersion    : {pkt.root_dispersion} ms.",
        f"Round trip delay   : {pkt.rtt()} ms.",
        f"Local clock offset : {off} ms.",
        f"Local time         : {now()+timedelta(milliseconds=off)}",
        ""])

def main(argv=None):
    ap=argparse.ArgumentParser(description="Query an SNTP server once.")
    ap.add_argument("--server",default=DEFAULT_HOST)
    ap.add_argument("--timeout",type=int,default=DEFAULT_TIMEOUT,help="ms")
    ap.add_argument("--port",type=int,default=NTP_PORT)
    ap.add_argument("-v","--verbose",action="store_true")
    args=ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    print(f"Connecting to {args.server}...\n")
    try: pkt=exchange(args.server,args.timeout,args.port)
    except SntpError as e:
        print(f"Error: {e}"); return 1
    print(report(pkt))
    return 0

if __name__=="__main__": sys.exit(main())
