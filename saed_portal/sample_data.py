"""Bundled sample instructors shown when the public directory cannot be fetched."""

from __future__ import annotations

from typing import Callable, List

from .models import GeoLocation, InstructorRecord

SampleDirectoryProvider = Callable[[], List[InstructorRecord]]


def default_sample_instructors() -> List[InstructorRecord]:
    return [
        InstructorRecord(
            id="inst-1",
            name="Michael Ade",
            email="michael.ade@nysc.gov.ng",
            headline="WEB DESIGNER | SOFTWARE DEV.",
            about="Expert mentor with over 10 years experience in tech education.",
            skills=["Web Design", "Graphic Design", "Software Engineering"],
            rating=5.0,
            review_count=0,
            phone_number="+234 803 123 4567",
            location=GeoLocation(lat=9.0765, lng=7.3986, address="Aladinz Academy", state="Kaduna", lga="Chikun"),
            linked_in_url="https://linkedin.com/",
            status="APPROVED",
            verified=True,
        ),
        InstructorRecord(
            id="inst-2",
            name="Mrs. Chidimma Okeke",
            email="chidimma.okeke@nysc.gov.ng",
            headline="Creative Director | Fashion Designer",
            about="Leading instructor in the creative sector specializing in modern tailoring.",
            skills=["Tailoring & Fashion Design", "Hat & Fascinator Making"],
            rating=5.0,
            review_count=95,
            phone_number="+234 812 987 6543",
            location=GeoLocation(
                lat=6.5244,
                lng=3.3792,
                address="32 Herbert Macaulay Way, Yaba",
                state="Lagos",
                lga="Surulere",
            ),
            linked_in_url="https://linkedin.com/",
            status="APPROVED",
            verified=True,
        ),
    ]


def approved_samples(provider: SampleDirectoryProvider) -> List[InstructorRecord]:
    return [record.model_copy(update={"status": "APPROVED"}) for record in provider()]


__all__ = ["SampleDirectoryProvider", "approved_samples", "default_sample_instructors"]
