from ai_attendance.utils.logger import get_logger

logger = get_logger(__name__)


def ensure_attendance_collection(records) -> bool:
    """Write the sentinel row if the attendance table is empty.

    Some tooling needs a non-empty table. Returns False instead of raising
    so startup can carry on and report the problem.
    """
    logger.info("Initializing attendance collection...")
    try:
        if records.is_empty():
            logger.info("Creating initial attendance record...")
            records.insert_sentinel()
            logger.info("Attendance collection initialized successfully")
        else:
            logger.info("Attendance collection already exists")
        return True
    except Exception as e:
        logger.error(f"Error initializing attendance collection: {e}")
        return False
