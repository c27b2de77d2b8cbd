# city key -> display label, state and the pincodes served in that city
CITY_DIRECTORY = {
    "mumbai": {"label": "Mumbai", "state": "Maharashtra", "pincodes": ["400001", "400050", "400070", "400099"]},
    "navi_mumbai": {"label": "Navi Mumbai", "state": "Maharashtra", "pincodes": ["400614", "400703", "400706"]},
    "thane": {"label": "Thane", "state": "Maharashtra", "pincodes": ["400601", "400604", "400607"]},
    "pune": {"label": "Pune", "state": "Maharashtra", "pincodes": ["411001", "411014", "411038"]},
    "nagpur": {"label": "Nagpur", "state": "Maharashtra", "pincodes": ["440001", "440010"]},
    "new_delhi": {"label": "New Delhi", "state": "Delhi", "pincodes": ["110001", "110011", "110017", "110085"]},
    "gurugram": {"label": "Gurugram", "state": "Haryana", "pincodes": ["122001", "122002", "122018"]},
    "noida": {"label": "Noida", "state": "Uttar Pradesh", "pincodes": ["201301", "201304"]},
    "lucknow": {"label": "Lucknow", "state": "Uttar Pradesh", "pincodes": ["226001", "226010"]},
    "bengaluru": {"label": "Bengaluru", "state": "Karnataka", "pincodes": ["560001", "560034", "560066", "560100"]},
    "mysuru": {"label": "Mysuru", "state": "Karnataka", "pincodes": ["570001", "570017"]},
    "chennai": {"label": "Chennai", "state": "Tamil Nadu", "pincodes": ["600001", "600017", "600040"]},
    "coimbatore": {"label": "Coimbatore", "state": "Tamil Nadu", "pincodes": ["641001", "641018"]},
    "hyderabad": {"label": "Hyderabad", "state": "Telangana", "pincodes": ["500001", "500032", "500081"]},
    "kolkata": {"label": "Kolkata", "state": "West Bengal", "pincodes": ["700001", "700019", "700091"]},
    "ahmedabad": {"label": "Ahmedabad", "state": "Gujarat", "pincodes": ["380001", "380015", "380054"]},
    "surat": {"label": "Surat", "state": "Gujarat", "pincodes": ["395001", "395007"]},
    "jaipur": {"label": "Jaipur", "state": "Rajasthan", "pincodes": ["302001", "302017"]},
    "kochi": {"label": "Kochi", "state": "Kerala", "pincodes": ["682001", "682024"]},
    "chandigarh": {"label": "Chandigarh", "state": "Chandigarh", "pincodes": ["160017", "160022"]},
    "bhopal": {"label": "Bhopal", "state": "Madhya Pradesh", "pincodes": ["462001", "462016"]},
    "indore": {"label": "Indore", "state": "Madhya Pradesh", "pincodes": ["452001", "452010"]},
}

# legacy and colloquial names
CITY_ALIASES = {
    "bombay": "mumbai",
    "bangalore": "bengaluru",
    "madras": "chennai",
    "calcutta": "kolkata",
    "gurgaon": "gurugram",
    "delhi": "new_delhi",
    "mysore": "mysuru",
    "cochin": "kochi",
    "new_bombay": "navi_mumbai",
}

STATES = sorted({entry["state"] for entry in CITY_DIRECTORY.values()})
