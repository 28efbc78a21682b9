from sample_library.ingest.cli import main

main()
