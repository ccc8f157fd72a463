import io

PATIENT = "0xPatient01"
OTHER_PATIENT = "0xPatient02"
DOCTOR = "0xDoctor01"
OTHER_DOCTOR = "0xDoctor02"


def upload(client, patient_address=PATIENT, title="Lab A", filename="lab.pdf",
           content=b"%PDF-1.4 test", record_type="lab-result", record_date="2024-01-01"):
    return client.post(
        "/api/records",
        data={
            "file": (io.BytesIO(content), filename),
            "title": title,
            "recordType": record_type,
            "recordDate": record_date,
            "patientAddress": patient_address,
        },
        content_type="multipart/form-data",
    )


def grant(client, record_ids, doctor_address=DOCTOR, patient_address=PATIENT, duration="7-days"):
    return client.post(
        "/api/access",
        json={
            "doctorAddress": doctor_address,
            "patientAddress": patient_address,
            "recordIds": record_ids,
            "accessDuration": duration,
        },
    )
