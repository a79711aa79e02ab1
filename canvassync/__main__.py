"""python -m canvassync"""
from canvassync.cli import main

main()
