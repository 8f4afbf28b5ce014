"""Test data shared across modules."""

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def full_stages():
    """Stage data with every required field of all seven steps filled."""
    return {
        "harvest": {
            "harvestDate": "2025-03-01",
            "farmLocation": "Larache",
            "farmerId": "F-001",
            "lotNumber": "LOT-TEST-001",
            "variety": "hass",
        },
        "transport": {"transportCompany": "Atlas Freight", "driverName": "Karim", "vehicleId": "TR-22"},
        "sorting": {"sortingDate": "2025-03-02", "qualityGrade": "A", "rejectedCount": 12},
        "packaging": {"packagingDate": "2025-03-03", "boxId": "BOX-1", "calibers": ["16", "18"], "netWeight": 4.0},
        "storage": {"entryDate": "2025-03-03", "storageRoomId": "CH-2", "warehouseId": "WH-1"},
        "export": {"loadingDate": "2025-03-05", "containerId": "MSCU1234567", "destination": "Rotterdam"},
        "delivery": {"estimatedDeliveryDate": "2025-03-15", "clientName": "FreshCo"},
    }
