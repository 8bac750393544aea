from datetime import timedelta


def intervals_overlap(start1, end1, start2, end2):
    """True when half-open intervals [start1, end1) and [start2, end2) share an instant."""
    return start1 < end2 and start2 < end1


def find_conflict(
    store, patient_id, clinic_id, start_utc, duration_minutes, exclude_id=None
):
    """
    Return an existing appointment that clashes with the proposed slot, or None.

    Only appointments of the same patient at the same clinic are considered;
    the doctor and the category play no part. ``exclude_id`` skips the
    appointment being edited so it never clashes with itself.
    """
    end_utc = start_utc + timedelta(minutes=duration_minutes)

    for existing in store.find_appointments_for(patient_id, clinic_id):
        if exclude_id is not None and existing.pk == exclude_id:
            continue
        if intervals_overlap(start_utc, end_utc, existing.start_utc, existing.end_utc):
            return existing
    return None
