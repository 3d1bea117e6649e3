# Workers: separate processes that use DB as shared state.
# Run from backend/ with:
#   python -m workers.activity_sync_worker
#   python -m workers.copy_executor_worker
