"""
Run the activity publisher with the Waitress WSGI server
All worker threads share one JWT cache, so renewals are serialized
"""
import os

from waitress import serve
from main import app

if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    threads = int(os.getenv('WAITRESS_THREADS', 4))

    print("\n" + "="*70)
    print(f"Starting Activity Publisher with Waitress on port {port} ({threads} threads)")
    print("="*70 + "\n")

    serve(app, host='0.0.0.0', port=port, threads=threads)
