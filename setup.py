from setuptools import setup, find_packages

package_name = 'gesture_trainer'

setup(
    name='gesture-trainer',
    version='1.0.0',
    packages=find_packages(exclude=['test']),
    install_requires=[
        'setuptools',
        'numpy>=1.24',
        'scikit-learn>=1.3',
        'opencv-python>=4.8',
        'mediapipe>=0.10.0,<0.10.30',
        'websockets>=13.0',
    ],
    extras_require={
        'test': ['pytest'],
    },
    zip_safe=True,
    description='Teachable hand gesture recognition with live broadcasting',
    license='MIT',
    tests_require=['pytest'],
    entry_points={
        'console_scripts': [
            'gesture_trainer = gesture_trainer.main:main',
        ],
    },
)
