from pdf_annotation_merger.cli import main

main()
