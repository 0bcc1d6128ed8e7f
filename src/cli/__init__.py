"""Command-line tools for CourseRAG.

- ``python -m src.cli ingest FILE --unit N`` -- ingest a document end to end
- ``python -m src.cli query MATERIAL_ID TEXT`` -- semantic retrieval
- ``python -m src.cli reembed MATERIAL_ID`` -- retrigger embedding
- ``python -m src.cli decide MESSAGE`` -- retrieval routing decision

Arguments are parsed with argparse; heavy imports are deferred until a
command actually runs.
"""
