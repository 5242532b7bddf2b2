# sntpserver.py - minimal loopback SNTP responder (stratum 1, "LOCL")
import argparse, logging, socket, threading
from datetime import datetime, timezone
from sntp import (PKT_SIZE,OFF_REF_ID,OFF_REF_TS,OFF_ORIG_TS,OFF_RECV_TS,OFF_TX_TS,
                  Header,Mode,set_date)

PORT=12300; PRECISION=-20   # ~1us

log=logging.getLogger("sntp")

def utcnow(): return datetime.now(timezone.utc).replace(tzinfo=None)

def reply(data,t2,t3=None):
    """Server-mode answer to a client request, or None if data is not one."""
    if len(data)<PKT_SIZE: return None
    req=Header.from_byte(data[0])
    if req.mode!=Mode.CLIENT: return None
    rep=bytearray(PKT_SIZE)
    rep[0]=Header(0,req.version,Mode.SERVER).to_byte()
    rep[1]=1; rep[3]=PRECISION&0xFF
    rep[OFF_REF_ID:OFF_REF_ID+4]=b"LOCL"
    set_date(rep,OFF_REF_TS,t2)
    rep[OFF_ORIG_TS:OFF_ORIG_TS+8]=data[OFF_TX_TS:OFF_TX_TS+8]
    set_date(rep,OFF_RECV_TS,t2)
    set_date(rep,OFF_TX_TS,t3 or utcnow())
    return rep

def serve(sock,poll=0.2):
    """Answer requests on sock until it is closed."""
    sock.settimeout(poll)            # recvfrom is not woken by close()
    while True:
        try:
            data,addr=sock.recvfrom(1024)
        except socket.timeout:
            if sock.fileno()==-1: return
            continue
        except OSError: return          # socket closed
        try:
            t2=utcnow()
            rep=reply(data,t2)
            if rep is None:
                log.debug("ignored %d bytes from %s",len(data),addr[0]); continue
            sock.sendto(rep,addr)
        except OSError: return          # socket closed
        log.debug("answered %s:%d",*addr)

def start(host="127.0.0.1",port=0):
    """Bind and serve in a daemon thread; returns (socket, thread). Close the socket to stop."""
    sock=socket.socket(socket.AF_INET,socket.SOCK_DGRAM)
    sock.bind((host,port))
    t=threading.Thread(target=serve,args=(sock,),daemon=True); t.start()
    return sock,t

def main(argv=None):
    ap=argparse.ArgumentParser(description="Loopback SNTP responder.")
    ap.add_argument("--host",default="0.0.0.0")
    ap.add_argument("--port",type=int,default=PORT)
    ap.add_argument("-v","--verbose",action="store_true")
    args=ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    sock=socket.socket(socket.AF_INET,socket.SOCK_DGRAM)
    sock.setsockopt(socket.SOL_SOCKET,socket.SO_REUSEADDR,1)
    sock.bind((args.host,args.port))
    print(f"UDP ready :{args.port}")
    try: serve(sock)
    except KeyboardInterrupt: print("stopped")
    finally: sock.close()

if __name__=="__main__": main()
